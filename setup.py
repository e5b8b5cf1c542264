"""
Setup script for the smart-backend-services package.
"""

from setuptools import setup, find_packages

setup(
    name="smart-backend-services",
    version="1.0.0",
    description="SMART on FHIR backend services token client",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "pyyaml",
        "requests>=2.31.0",
        "pyjwt[crypto]>=2.4.0",
        "cryptography>=36.0.0",
        "pydantic>=1.10.11,<2.0.0",
        "fhir.resources>=7.0.0,<8.0.0",
        "tenacity>=8.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "responses>=0.23.0",
            "black",
            "isort",
            "pylint",
        ],
    },
    entry_points={
        "console_scripts": [
            "smart-backend-get-token=smart_backend_services.cli.auth_token:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
)
