import base64
import json
from typing import Optional

from aws_lambda_powertools import Logger

from common.object_store import ObjectStore, get_object_store
from .config import Settings, get_settings
from .headers import build_response_headers
from .lib import (
    ErrorCodes,
    ExecutionResult,
    ImageHandlerError,
    ImageRequestInfo,
    StatusCodes,
    http_date,
)

logger = Logger(service="fallback-resolver")

FALLBACK_CACHE_CONTROL = 'max-age=31536000,public'
GENERIC_ERROR_MESSAGE = 'Internal error. Please contact the system administrator.'


def build_redirect_response(key: str, settings: Optional[Settings] = None) -> ExecutionResult:
    """고해상도 CDN 의 원본 이미지로 리다이렉트 (헤더 빌더를 거치지 않음)"""
    settings = settings or get_settings()
    if key == '':
        logger.warning("요청 키 없이 리다이렉트 생성, Location 경로가 비어 있음")

    return ExecutionResult(
        status_code=StatusCodes.MOVED.value,
        headers={'Location': f"{settings.highres_cdn_url}/{key}"},
        body=None,
        is_base64_encoded=False,
    )


def fetch_fallback_image(
    error: ImageHandlerError,
    is_alb: bool,
    settings: Settings,
    object_store: Optional[ObjectStore] = None
) -> Optional[ExecutionResult]:
    """기본 대체 이미지 조회 및 응답 구성, 어떤 실패든 None 반환"""
    bucket = settings.default_fallback_image_bucket
    key = settings.default_fallback_image_key

    try:
        fallback_image = (object_store or get_object_store()).get_object(bucket, key)

        image_headers = {
            name: value for name, value in (
                ('Content-Type', fallback_image.get('ContentType')),
                ('Last-Modified', http_date(fallback_image.get('LastModified'))),
            ) if value is not None
        }
        headers = {
            **build_response_headers(False, is_alb, settings),
            **image_headers,
            'Cache-Control': FALLBACK_CACHE_CONTROL,
        }

        return ExecutionResult(
            status_code=error.status or StatusCodes.INTERNAL_SERVER_ERROR.value,
            headers=headers,
            body=base64.b64encode(fallback_image['Body']).decode('utf-8'),
            is_base64_encoded=True,
        )
    except Exception:
        logger.exception(f"기본 대체 이미지 조회 실패: s3://{bucket}/{key}")
        return None


def build_error_response(error: ImageHandlerError, is_alb: bool, settings: Settings) -> ExecutionResult:
    headers = build_response_headers(True, is_alb, settings)

    if error.status:
        return ExecutionResult(
            status_code=error.status,
            headers=headers,
            body=json.dumps(error.to_dict(), separators=(',', ':')),
            is_base64_encoded=False,
        )

    return ExecutionResult(
        status_code=StatusCodes.INTERNAL_SERVER_ERROR.value,
        headers=headers,
        body=json.dumps({
            'message': GENERIC_ERROR_MESSAGE,
            'code': ErrorCodes.INTERNAL_ERROR.value,
            'status': StatusCodes.INTERNAL_SERVER_ERROR.value,
        }, separators=(',', ':')),
        is_base64_encoded=False,
    )


def resolve_fallback(
    error: Exception,
    request_info: ImageRequestInfo,
    is_alb: bool = False,
    settings: Optional[Settings] = None,
    object_store: Optional[ObjectStore] = None
) -> ExecutionResult:
    """
    실패한 요청의 최종 응답 결정. 먼저 일치하는 단계가 우선함

    1. 이미지가 너무 크면 고해상도 CDN 으로 리다이렉트
    2. 기본 대체 이미지가 설정되어 있으면 해당 이미지 반환
    3. 구조화된 JSON 오류 반환 (상태 코드가 없으면 일반 500)
    """
    settings = settings or get_settings()
    error = ImageHandlerError.from_exception(error)

    if error.code == ErrorCodes.TOO_LARGE_IMAGE.value:
        logger.info(f"이미지가 너무 커서 고해상도 CDN 으로 리다이렉트: {request_info.key}")
        return build_redirect_response(request_info.key, settings)

    if settings.fallback_image_configured:
        result = fetch_fallback_image(error, is_alb, settings, object_store)
        if result is not None:
            logger.info(f"기본 대체 이미지 반환 [{error.code}]")
            return result

    return build_error_response(error, is_alb, settings)
