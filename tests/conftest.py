"""
이미지 핸들러 테스트용 pytest 설정 및 픽스처
"""
import os
import sys
import uuid

import pytest

# 테스트용 환경 변수 설정 (모듈 임포트 전에 적용)
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')
os.environ.setdefault('POWERTOOLS_TRACE_DISABLED', '1')
os.environ.setdefault('POWERTOOLS_SERVICE_NAME', 'image-handler')
os.environ.setdefault('POWERTOOLS_METRICS_NAMESPACE', 'ImageHandler')

# workers 디렉터리를 Python 경로에 추가
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'workers'))

from image_handler import main as handler_main  # noqa: E402
from image_handler.config import get_settings  # noqa: E402


class MockContext:
    def __init__(self, function_name: str = "image-handler"):
        self.function_name = function_name
        self.function_version = "$LATEST"
        self.aws_request_id = str(uuid.uuid4())
        self.memory_limit_in_mb = 512
        self.invoked_function_arn = f"arn:aws:lambda:us-east-1:123456789012:function:{function_name}"


@pytest.fixture
def lambda_context():
    return MockContext()


@pytest.fixture(autouse=True)
def reset_process_state():
    """프로세스 수명 캐시와 싱글톤 초기화"""
    get_settings.cache_clear()
    handler_main._image_request = None
    handler_main._image_processor = None
    yield
    get_settings.cache_clear()
    handler_main.metrics.clear_metrics()
