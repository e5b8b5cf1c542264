from smart_backend_services.domain.bindings import BindingStore, ClientIdentity, ServerBinding

__all__ = ["BindingStore", "ClientIdentity", "ServerBinding"]
