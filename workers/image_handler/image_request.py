import base64
import binascii
import hashlib
import hmac
import json
import re
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote

from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from common.object_store import ObjectStore, error_code_of, get_object_store
from common.secrets_cache import SecretProvider, SecretsRetrievalError, get_secret_provider
from .config import Settings, get_settings
from .lib import ErrorCodes, ImageHandlerError, ImageRequestInfo, RequestTypes, StatusCodes, http_date

logger = Logger(service="image-request")

DEFAULT_CACHE_CONTROL = 'max-age=31536000,public'

OUTPUT_CONTENT_TYPES = {
    'jpeg': 'image/jpeg',
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'webp': 'image/webp',
    'gif': 'image/gif',
    'tiff': 'image/tiff',
}

DEFAULT_REQUEST_PATTERN = re.compile(
    r'^/?([0-9a-zA-Z+/]{4})*(([0-9a-zA-Z+/]{2}==)|([0-9a-zA-Z+/]{3}=))?$'
)
THUMBOR_REQUEST_PATTERN = re.compile(r'^/?(?:(fit-in)/)?(\d*)x(\d*)/(.+)$')


class ImageRequest:
    """
    유입 이벤트를 정규화된 ImageRequestInfo 로 변환

    지원하는 요청 형식:
      Default      base64 로 인코딩된 JSON ({bucket, key, edits, outputFormat, headers})
      Thumbor      /[fit-in/]<W>x<H>/<key>
      Passthrough  /<key> (편집 없음, 고해상도 CDN 리다이렉트 대상)
    """

    def __init__(
        self,
        object_store: Optional[ObjectStore] = None,
        secret_provider: Optional[SecretProvider] = None,
        settings: Optional[Settings] = None
    ):
        self.object_store = object_store or get_object_store()
        self._secret_provider = secret_provider
        self.settings = settings or get_settings()

    @property
    def secret_provider(self) -> SecretProvider:
        if self._secret_provider is None:
            self._secret_provider = get_secret_provider()
        return self._secret_provider

    def setup(self, event: Dict[str, Any]) -> ImageRequestInfo:
        path = event.get('path') or event.get('rawPath') or ''
        query = event.get('queryStringParameters') or {}

        if self.settings.enable_signature:
            self.validate_signature(path, query)

        request_type = self.parse_request_type(path)
        bucket, key, edits, output_format, headers = self.parse_request(request_type, path)

        if output_format:
            edits = {**edits, 'toFormat': output_format}

        bucket = self.resolve_bucket(bucket)

        if not edits:
            return ImageRequestInfo(
                key=key,
                edits={},
                headers=headers,
                bucket=bucket,
                request_type=request_type,
            )

        original = self.fetch_original_image(bucket, key)
        content_type = OUTPUT_CONTENT_TYPES.get(output_format or '') or original.get('ContentType')

        return ImageRequestInfo(
            key=key,
            edits=edits,
            content_type=content_type,
            expires=http_date(original.get('Expires')),
            last_modified=http_date(original.get('LastModified')),
            cache_control=original.get('CacheControl') or DEFAULT_CACHE_CONTROL,
            headers=headers,
            bucket=bucket,
            original_image=original['Body'],
            output_format=output_format,
            request_type=request_type,
        )

    def parse_request_type(self, path: str) -> RequestTypes:
        if path.strip('/') == '':
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.REQUEST_TYPE_ERROR,
                'The request path is empty. Please provide an image key or an encoded image request.'
            )
        if THUMBOR_REQUEST_PATTERN.match(path):
            return RequestTypes.THUMBOR
        if DEFAULT_REQUEST_PATTERN.match(path) and self.decode_default_request(path) is not None:
            return RequestTypes.DEFAULT
        return RequestTypes.PASSTHROUGH

    def parse_request(
        self,
        request_type: RequestTypes,
        path: str
    ) -> Tuple[Optional[str], str, Dict[str, Any], Optional[str], Optional[Dict[str, str]]]:
        if request_type == RequestTypes.DEFAULT:
            return self.parse_default_request(path)

        if request_type == RequestTypes.THUMBOR:
            fit_in, width, height, key = THUMBOR_REQUEST_PATTERN.match(path).groups()
            resize = {
                'width': (int(width) or None) if width else None,
                'height': (int(height) or None) if height else None,
                'fit': 'inside' if fit_in else 'cover',
            }
            edits = {'resize': resize} if resize['width'] or resize['height'] else {}
            return None, unquote(key), edits, None, None

        return None, unquote(path.lstrip('/')), {}, None, None

    @staticmethod
    def decode_default_request(path: str) -> Optional[Dict[str, Any]]:
        """base64 JSON 객체로 디코딩되지 않으면 None (Passthrough 키로 취급)"""
        try:
            decoded = base64.b64decode(path.lstrip('/'), validate=True)
            request = json.loads(decoded.decode('utf-8'))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"base64 요청으로 디코딩되지 않음: {e}")
            return None
        return request if isinstance(request, dict) else None

    def parse_default_request(
        self,
        path: str
    ) -> Tuple[Optional[str], str, Dict[str, Any], Optional[str], Optional[Dict[str, str]]]:
        request = self.decode_default_request(path)
        if request is None:
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.CANNOT_DECODE_REQUEST,
                'The image request you provided could not be decoded. Please check that your request is base64 encoded properly.'
            )

        edits = request.get('edits') or {}
        if not isinstance(edits, dict):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid edits')

        headers = request.get('headers')
        if headers is not None and not isinstance(headers, dict):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid headers')

        key = request.get('key')
        if key is not None and not isinstance(key, str):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid key')
        if not key:
            raise ImageHandlerError(
                StatusCodes.NOT_FOUND,
                ErrorCodes.CANNOT_FIND_IMAGE,
                'The image you specified could not be found. Please check your request syntax.'
            )

        output_format = request.get('outputFormat')
        if output_format and (not isinstance(output_format, str) or output_format.lower() not in OUTPUT_CONTENT_TYPES):
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.UNSUPPORTED_FORMAT,
                f'The output format {output_format} is not supported.'
            )

        return (
            request.get('bucket'),
            key,
            edits,
            output_format.lower() if output_format else None,
            headers,
        )

    def resolve_bucket(self, requested: Optional[str]) -> Optional[str]:
        """요청 버킷이 허용 목록에 있는지 확인, 없으면 기본(첫 번째) 버킷 사용"""
        allowed = self.settings.source_buckets
        if requested:
            if requested not in allowed:
                raise ImageHandlerError(
                    StatusCodes.FORBIDDEN,
                    ErrorCodes.CANNOT_ACCESS_BUCKET,
                    'The bucket you specified could not be accessed. Please check that the bucket is specified in your SOURCE_BUCKETS.'
                )
            return requested
        return allowed[0] if allowed else None

    def validate_signature(self, path: str, query: Dict[str, str]) -> None:
        signature = query.get('signature')
        if not signature:
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.MISSING_SIGNATURE,
                'Query-string requires the signature parameter.'
            )

        try:
            secret = self.secret_provider.get_secret(self.settings.secrets_manager)
            secret_key = secret[self.settings.secret_key]
        except (SecretsRetrievalError, KeyError) as e:
            logger.error(f"서명 검증용 자격증명 로드 실패: {e}")
            raise ImageHandlerError(
                StatusCodes.INTERNAL_SERVER_ERROR,
                ErrorCodes.SECRET_NOT_FOUND,
                'Signature validation failed. Please contact the system administrator.'
            )

        expected = hmac.new(secret_key.encode('utf-8'), path.encode('utf-8'), hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, signature):
            raise ImageHandlerError(
                StatusCodes.FORBIDDEN,
                ErrorCodes.SIGNATURE_MISMATCH,
                'Signature does not match.'
            )

    def fetch_original_image(self, bucket: Optional[str], key: str) -> Dict[str, Any]:
        if not bucket:
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.CANNOT_ACCESS_BUCKET,
                'No source bucket is configured. Please set SOURCE_BUCKETS.'
            )

        try:
            return self.object_store.get_object(bucket, key)
        except ClientError as e:
            error_code = error_code_of(e)
            if error_code in ('NoSuchKey', 'NotFound'):
                raise ImageHandlerError(
                    StatusCodes.NOT_FOUND,
                    ErrorCodes.NO_SUCH_KEY,
                    f'The image {key} does not exist or the request may not be base64 encoded properly.'
                )
            if error_code == 'AccessDenied':
                raise ImageHandlerError(
                    StatusCodes.FORBIDDEN,
                    ErrorCodes.ACCESS_DENIED,
                    f'Access to the image {key} was denied.'
                )
            logger.error(f"원본 이미지 조회 실패 [{error_code}]: s3://{bucket}/{key}")
            raise ImageHandlerError(
                StatusCodes.INTERNAL_SERVER_ERROR,
                ErrorCodes.CANNOT_FETCH_IMAGE,
                'The original image could not be retrieved. Please contact the system administrator.'
            )
