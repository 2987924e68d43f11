from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from enum import Enum, IntEnum
from typing import Dict, Any, Optional, Union

HeaderValue = Union[str, bool]
Headers = Dict[str, HeaderValue]


def http_date(value: Union[datetime, str, None]) -> Optional[str]:
    """S3 메타데이터의 datetime 을 HTTP-date 문자열로 변환"""
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


class StatusCodes(IntEnum):
    OK = 200
    MOVED = 301
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    REQUEST_TOO_LONG = 413
    INTERNAL_SERVER_ERROR = 500


class ErrorCodes(str, Enum):
    """알려진 오류 코드 (협력자는 임의의 문자열 코드도 사용할 수 있음)"""
    TOO_LARGE_IMAGE = 'TooLargeImageException'
    INTERNAL_ERROR = 'InternalError'
    BAD_REQUEST = 'BadRequest'
    REQUEST_TYPE_ERROR = 'RequestTypeError'
    CANNOT_DECODE_REQUEST = 'DecodeRequest::CannotDecodeRequest'
    CANNOT_ACCESS_BUCKET = 'ImageBucket::CannotAccessBucket'
    CANNOT_FETCH_IMAGE = 'ImageBucket::CannotFetchImage'
    CANNOT_FIND_IMAGE = 'ImageEdits::CannotFindImage'
    NO_SUCH_KEY = 'NoSuchKey'
    ACCESS_DENIED = 'AccessDenied'
    MISSING_SIGNATURE = 'AuthorizationQueryParametersError'
    SIGNATURE_MISMATCH = 'SignatureDoesNotMatch'
    SECRET_NOT_FOUND = 'SecretsManager::CannotFindSecret'
    CANNOT_DECODE_IMAGE = 'ImageEdits::CannotDecodeImage'
    UNSUPPORTED_FORMAT = 'ImageEdits::UnsupportedFormat'


class RequestTypes(str, Enum):
    DEFAULT = 'Default'
    THUMBOR = 'Thumbor'
    PASSTHROUGH = 'Passthrough'


class ImageHandlerError(Exception):
    """이미지 핸들러 오류 (상태 코드는 선택)"""

    def __init__(self, status: Optional[int], code: Union[str, ErrorCodes], message: str):
        super().__init__(message)
        self.status = int(status) if status else None
        self.code = code.value if isinstance(code, ErrorCodes) else code
        self.message = message

    @classmethod
    def from_exception(cls, error: Exception) -> 'ImageHandlerError':
        if isinstance(error, cls):
            return error
        return cls(None, ErrorCodes.INTERNAL_ERROR, str(error))

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status, 'code': self.code, 'message': self.message}

    def __repr__(self) -> str:
        return f"ImageHandlerError(status={self.status!r}, code={self.code!r}, message={self.message!r})"


@dataclass(frozen=True)
class ImageRequestInfo:
    key: str = ''
    edits: Dict[str, Any] = field(default_factory=dict)
    content_type: Optional[str] = None
    expires: Optional[str] = None
    last_modified: Optional[str] = None
    cache_control: Optional[str] = None
    headers: Optional[Headers] = None
    bucket: Optional[str] = None
    original_image: Optional[bytes] = field(default=None, repr=False)
    output_format: Optional[str] = None
    request_type: Optional[RequestTypes] = None

    @classmethod
    def empty(cls) -> 'ImageRequestInfo':
        return cls()

    @property
    def is_passthrough(self) -> bool:
        """편집 없이 원본 키만 있으면 고해상도 CDN 리다이렉트 대상"""
        return not self.edits and self.key != ''


@dataclass(frozen=True)
class ExecutionResult:
    status_code: int
    headers: Headers
    body: Optional[str] = None
    is_base64_encoded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'statusCode': self.status_code,
            'headers': dict(self.headers),
            'body': self.body,
            'isBase64Encoded': self.is_base64_encoded,
        }
