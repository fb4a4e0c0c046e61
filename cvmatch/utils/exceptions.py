"""
Custom Exception Classes for the CV matching backend
"""
from typing import Dict, Any
from fastapi import HTTPException


class CVMatchError(Exception):
    """Base exception for the CV matching backend"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(CVMatchError):
    """Raised when data (including model output) does not conform to a schema"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)[:200]
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class DatabaseError(CVMatchError):
    """Raised when document store operations fail"""

    def __init__(self, message: str, operation: str = None, collection: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if operation:
            details['operation'] = operation
        if collection:
            details['collection'] = collection
        super().__init__(message, error_code="DATABASE_ERROR", details=details, **kwargs)


class ExternalServiceError(CVMatchError):
    """Raised when external model service calls fail or time out"""

    def __init__(self, message: str, service_name: str = None, status_code: int = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if service_name:
            details['service_name'] = service_name
        if status_code:
            details['status_code'] = status_code
        super().__init__(message, error_code="EXTERNAL_SERVICE_ERROR", details=details, **kwargs)


class EmbeddingError(CVMatchError):
    """Raised when text cannot be embedded (empty input or service failure)"""

    def __init__(self, message: str, model_name: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if model_name:
            details['model_name'] = model_name
        super().__init__(message, error_code="EMBEDDING_ERROR", details=details, **kwargs)


class ExtractionError(CVMatchError):
    """Raised when a CV cannot be turned into a structured record"""

    def __init__(self, message: str, document_id: str = None, error_code: str = "EXTRACTION_ERROR", **kwargs):
        details = kwargs.pop('details', None) or {}
        if document_id:
            details['document_id'] = document_id
        super().__init__(message, error_code=error_code, details=details, **kwargs)


class FileReadError(ExtractionError):
    """Raised when a source file is missing, unreadable or corrupt"""

    def __init__(self, message: str, file_path: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if file_path:
            details['file_path'] = str(file_path)
        super().__init__(message, error_code="FILE_READ_ERROR", details=details, **kwargs)


class NotFoundError(CVMatchError):
    """Raised when a referenced candidate, job or match does not exist"""

    def __init__(self, message: str, resource: str = None, resource_id: str = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if resource:
            details['resource'] = resource
        if resource_id:
            details['resource_id'] = str(resource_id)
        super().__init__(message, error_code="NOT_FOUND", details=details, **kwargs)


class ConfigurationError(CVMatchError):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', None) or {}
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


# HTTP Exception Mapping
def map_to_http_exception(exc: CVMatchError) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""

    status_code_mapping = {
        ValidationError: 422,
        ConfigurationError: 500,
        NotFoundError: 404,
        FileReadError: 400,
        ExtractionError: 422,
        EmbeddingError: 502,
        DatabaseError: 500,
        ExternalServiceError: 502,
    }

    status_code = status_code_mapping.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    return HTTPException(status_code=status_code, detail=detail)
