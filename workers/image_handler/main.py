from typing import Any, Dict, Optional, Protocol

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from aws_lambda_powertools.utilities.typing import LambdaContext

from common.object_store import ObjectStore
from .config import Settings, get_settings
from .fallback import build_redirect_response, resolve_fallback
from .headers import build_response_headers, is_alb_request
from .image_processor import ImageProcessor
from .image_request import ImageRequest
from .lib import ExecutionResult, ImageRequestInfo, StatusCodes

logger = Logger(service="image-handler")
metrics = Metrics(namespace="ImageHandler", service="image-handler")
tracer = Tracer(service="image-handler")


class RequestSetup(Protocol):
    def setup(self, event: Dict[str, Any]) -> ImageRequestInfo: ...


class ImageProcessing(Protocol):
    def process(self, request_info: ImageRequestInfo) -> str: ...


_image_request: Optional[ImageRequest] = None
_image_processor: Optional[ImageProcessor] = None


def get_image_request() -> ImageRequest:
    """싱글톤 요청 설정 협력자 반환"""
    global _image_request
    if _image_request is None:
        _image_request = ImageRequest()
    return _image_request


def get_image_processor() -> ImageProcessor:
    """싱글톤 이미지 처리 협력자 반환"""
    global _image_processor
    if _image_processor is None:
        _image_processor = ImageProcessor()
    return _image_processor


def build_success_response(
    request_info: ImageRequestInfo,
    processed_image: str,
    is_alb: bool,
    settings: Settings
) -> ExecutionResult:
    # 우선순위: 기본 헤더 < 이미지 메타데이터 < 요청의 사용자 정의 헤더
    content_headers = {
        name: value for name, value in (
            ('Content-Type', request_info.content_type),
            ('Expires', request_info.expires),
            ('Last-Modified', request_info.last_modified),
            ('Cache-Control', request_info.cache_control),
        ) if value is not None
    }
    headers = {
        **build_response_headers(False, is_alb, settings),
        **content_headers,
        **(request_info.headers or {}),
    }

    return ExecutionResult(
        status_code=StatusCodes.OK.value,
        headers=headers,
        body=processed_image,
        is_base64_encoded=True,
    )


def record_outcome(result: ExecutionResult) -> None:
    if result.status_code == StatusCodes.MOVED:
        name = "RedirectedToSource"
    elif result.is_base64_encoded and result.status_code != StatusCodes.OK:
        name = "FallbackImageServed"
    elif result.is_base64_encoded:
        name = "ImageProcessed"
    else:
        name = "ErrorResponse"
    metrics.add_metric(name=name, unit=MetricUnit.Count, value=1)


@tracer.capture_method(capture_response=False)
def handle_request(
    event: Dict[str, Any],
    image_request: Optional[RequestSetup] = None,
    image_processor: Optional[ImageProcessing] = None,
    settings: Optional[Settings] = None,
    object_store: Optional[ObjectStore] = None
) -> ExecutionResult:
    """
    요청 한 건을 처리하고 항상 ExecutionResult 를 반환 (예외를 전파하지 않음)

    1. 요청 설정으로 ImageRequestInfo 생성
    2. 편집 없이 키만 있으면 고해상도 CDN 으로 리다이렉트
    3. 이미지 처리 후 200 응답
    4. 실패 시 대체 응답 결정 (리다이렉트 -> 기본 대체 이미지 -> 오류)
    """
    settings = settings or get_settings()
    is_alb = is_alb_request(event)
    request_info = ImageRequestInfo.empty()

    try:
        request_info = (image_request or get_image_request()).setup(event)
        logger.info("이미지 요청 정보", extra={
            'key': request_info.key,
            'bucket': request_info.bucket,
            'edits': request_info.edits,
            'request_type': request_info.request_type,
        })

        if request_info.is_passthrough:
            logger.info("편집 요청 없음, 고해상도 CDN 으로 리다이렉트")
            result = build_redirect_response(request_info.key, settings)
        else:
            processed_image = (image_processor or get_image_processor()).process(request_info)
            result = build_success_response(request_info, processed_image, is_alb, settings)

    except Exception as e:
        logger.exception(f"이미지 요청 처리 실패: {e}")
        result = resolve_fallback(e, request_info, is_alb, settings, object_store)

    record_outcome(result)
    return result


@logger.inject_lambda_context(log_event=True)
@metrics.log_metrics(capture_cold_start_metric=True)
@tracer.capture_lambda_handler(capture_response=False)
def handler(event: Dict[str, Any], context: LambdaContext) -> Dict[str, Any]:
    return handle_request(event).to_dict()
