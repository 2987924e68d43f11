from typing import Any, Dict, Optional

from .config import Settings, get_settings
from .lib import Headers


def is_alb_request(event: Dict[str, Any]) -> bool:
    """ALB 이벤트는 requestContext 에 elb 항목을 포함"""
    request_context = event.get('requestContext') or {}
    return isinstance(request_context, dict) and 'elb' in request_context


def build_response_headers(
    is_error: bool = False,
    is_alb: bool = False,
    settings: Optional[Settings] = None
) -> Headers:
    """
    성공/오류 여부와 유입 프로토콜에 맞는 응답 헤더 생성
    호출마다 새로운 dict 를 반환하므로 호출자가 덮어써도 안전함
    """
    settings = settings or get_settings()

    base = {
        'Access-Control-Allow-Methods': 'GET',
        'Access-Control-Allow-Headers': 'Content-Type, Authorization',
    }
    # ALB 는 Allow-Credentials 헤더를 허용하지 않음
    protocol = {} if is_alb else {'Access-Control-Allow-Credentials': True}
    cors = {'Access-Control-Allow-Origin': settings.cors_origin} if settings.cors_enabled else {}
    content = {'Content-Type': 'application/json'} if is_error else {}

    return {**base, **protocol, **cors, **content}
