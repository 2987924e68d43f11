import boto3
from typing import Dict, Any, Optional
from botocore.exceptions import ClientError
from botocore.config import Config
from aws_lambda_powertools import Logger
import backoff

logger = Logger(service="object-store")

RETRYABLE_ERROR_CODES = (
    'SlowDown',
    'Throttling',
    'ThrottlingException',
    'RequestLimitExceeded',
    'ServiceUnavailable',
)


def error_code_of(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


def _is_permanent(error: ClientError) -> bool:
    """스로틀링 계열이 아니면 재시도하지 않음"""
    return error_code_of(error) not in RETRYABLE_ERROR_CODES


class ObjectStore:
    """S3 객체 조회 통합 클래스"""

    def __init__(self, client=None):
        self.client = client or boto3.client('s3', config=Config(
            retries={'max_attempts': 2, 'mode': 'standard'}
        ))

    @backoff.on_exception(
        backoff.expo,
        ClientError,
        max_tries=3,
        base=2,
        max_value=10,
        giveup=_is_permanent,
        logger=logger
    )
    def get_object(self, bucket: str, key: str) -> Dict[str, Any]:
        """객체 본문을 모두 읽어 메타데이터와 함께 반환"""
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            logger.warning(f"S3 객체 조회 실패 [{error_code_of(e)}]: s3://{bucket}/{key}")
            raise

        return {
            'Body': response['Body'].read(),
            'ContentType': response.get('ContentType'),
            'LastModified': response.get('LastModified'),
            'Expires': response.get('Expires'),
            'CacheControl': response.get('CacheControl'),
        }


_object_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """싱글톤 객체 저장소 반환"""
    global _object_store
    if _object_store is None:
        _object_store = ObjectStore()
    return _object_store
