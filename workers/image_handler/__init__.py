"""
이미지 전송 핸들러
요청 해석, 이미지 처리 위임, 대체 응답 결정 및 HTTP 응답 구성
"""

from .lib import ErrorCodes, ExecutionResult, ImageHandlerError, ImageRequestInfo, StatusCodes

__all__ = [
    'ErrorCodes',
    'ExecutionResult',
    'ImageHandlerError',
    'ImageRequestInfo',
    'StatusCodes'
]
