"""
Key handling for assertion signing and public key publication.
"""

from smart_backend_services.security.keys import KeyMaterialProvider, SecretValue

__all__ = ["KeyMaterialProvider", "SecretValue"]
