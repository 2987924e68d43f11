"""
공통 모듈 패키지
이미지 전송 핸들러의 공유 유틸리티 및 클래스
"""

__version__ = "1.0.0"
__author__ = "Image Delivery Team"

# 주요 클래스 및 함수 익스포트
from .object_store import ObjectStore, get_object_store, error_code_of
from .secrets_cache import SecretProvider, get_secret_provider, SecretsRetrievalError

__all__ = [
    'ObjectStore',
    'get_object_store',
    'error_code_of',
    'SecretProvider',
    'get_secret_provider',
    'SecretsRetrievalError'
]
