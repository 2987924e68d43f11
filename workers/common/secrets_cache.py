from typing import Optional, Dict, Any
from aws_lambda_powertools.utilities.parameters import SecretsProvider
from aws_lambda_powertools.utilities.parameters.exceptions import GetParameterError, TransformParameterError
from aws_lambda_powertools import Logger

logger = Logger(service="secrets-cache")

DEFAULT_MAX_AGE = 300


class SecretsRetrievalError(Exception):
    """자격증명 검색 관련 예외"""
    pass


class SecretProvider:
    """
    AWS Secrets Manager 자격증명 캐시
    Lambda 실행 컨텍스트 동안 max_age 초 만큼 메모리에 캐시됨
    """

    def __init__(self, client=None, max_age: int = DEFAULT_MAX_AGE):
        self.provider = SecretsProvider(boto3_client=client) if client else SecretsProvider()
        self.max_age = max_age

    def get_secret(self, secret_id: str) -> Dict[str, Any]:
        if not secret_id:
            raise SecretsRetrievalError("자격증명 이름이 설정되지 않았습니다.")

        try:
            secret_value = self.provider.get(secret_id, max_age=self.max_age, transform='json')
        except TransformParameterError as e:
            logger.error(f"자격증명 JSON 파싱 실패: {secret_id} - {e}")
            raise SecretsRetrievalError(f"JSON 형식 오류: {secret_id}")
        except GetParameterError as e:
            logger.error(f"자격증명 로드 실패: {secret_id} - {e}")
            raise SecretsRetrievalError(f"자격증명 리소스 없음: {secret_id}")

        if not isinstance(secret_value, dict) or not secret_value:
            raise SecretsRetrievalError(f"빈 자격증명: {secret_id}")

        logger.debug(f"자격 증명 로드 완료: {secret_id}")
        return secret_value

    def clear_cache(self) -> None:
        """캐시 무효화"""
        self.provider.clear_cache()


_secret_provider: Optional[SecretProvider] = None


def get_secret_provider() -> SecretProvider:
    """싱글톤 자격증명 제공자 반환"""
    global _secret_provider
    if _secret_provider is None:
        _secret_provider = SecretProvider()
    return _secret_provider
