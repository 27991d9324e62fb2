from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class PortfolioException(HTTPException):
    """Base class for errors rendered as JSON problem responses"""

    def __init__(
        self, status_code: int, detail: Any = None, headers: Optional[Dict[str, str]] = None
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class MalformedRequestError(PortfolioException):
    """Request body or query could not be decoded"""

    def __init__(self, detail: Any = "Malformed request body."):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class AuthenticationError(PortfolioException):
    """Missing, expired or unknown session"""

    def __init__(self, detail: str = "Authentication required."):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class ProjectNotFoundError(PortfolioException):
    def __init__(self, detail: str = "Project not found."):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ProjectConflictError(PortfolioException):
    def __init__(self, detail: str = "A project with this id already exists."):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class OAuthConfigurationError(PortfolioException):
    """Identity provider credentials are not configured"""

    def __init__(self, detail: str = "OAuth provider is not configured."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class StorageError(PortfolioException):
    """Write to the file or database backend failed"""

    def __init__(self, detail: str = "Storage backend error."):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


class OAuthFlowError(Exception):
    """
    A login attempt failed. Never reaches the client as an error response;
    the auth routes turn it into a redirect carrying ``tag``.
    """

    def __init__(self, tag: str, message: str = ""):
        super().__init__(message or tag)
        self.tag = tag
