"""
Signing and authentication exceptions for azsigner.
"""


class SigningError(Exception):
    """Base exception for failures while producing a SharedKey signature."""
    
    def __init__(self, message: str, error_code: str = "SigningFailed"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class DecodeError(SigningError):
    """Raised when the account key is not valid base64."""
    
    def __init__(self, message: str = "Account key is not valid base64"):
        super().__init__(message, "InvalidAccountKey")


class QueryParseError(SigningError):
    """Raised when the request query string cannot be parsed."""
    
    def __init__(self, message: str = "Failed to parse query params"):
        super().__init__(message, "InvalidQueryParameter")


class InvalidAuthorizationHeaderError(SigningError):
    """Raised when an Authorization header is malformed."""
    
    def __init__(self, message: str = "Invalid Authorization header format"):
        super().__init__(message, "InvalidAuthorizationHeader")
