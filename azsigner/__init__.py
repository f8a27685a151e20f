"""
azsigner: Azure Storage SharedKey request signing

Canonicalizes outbound HTTP requests, signs them with a storage account key,
and optionally relays them to Azure Storage.
"""

__version__ = "0.1.0"

from .auth import Credentials, RequestDescriptor, build_string_to_sign, sign_request

__all__ = ["Credentials", "RequestDescriptor", "build_string_to_sign", "sign_request", "__version__"]
