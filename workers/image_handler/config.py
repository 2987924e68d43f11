import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Tuple

ENABLED = 'Yes'


def is_blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ''


@dataclass(frozen=True)
class Settings:
    """환경 변수에서 읽은 핸들러 설정 (프로세스 수명 동안 읽기 전용)"""
    highres_cdn_url: str = ''
    cors_enabled: bool = False
    cors_origin: str = '*'
    enable_default_fallback_image: bool = False
    default_fallback_image_bucket: str = ''
    default_fallback_image_key: str = ''
    source_buckets: Tuple[str, ...] = ()
    enable_signature: bool = False
    secrets_manager: str = ''
    secret_key: str = ''

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ
        source_buckets = tuple(
            bucket.strip() for bucket in env.get('SOURCE_BUCKETS', '').split(',') if bucket.strip()
        )
        return cls(
            highres_cdn_url=env.get('HIGHRES_CDN_URL', ''),
            cors_enabled=env.get('CORS_ENABLED', 'No') == ENABLED,
            cors_origin=env.get('CORS_ORIGIN', '*'),
            enable_default_fallback_image=env.get('ENABLE_DEFAULT_FALLBACK_IMAGE', 'No') == ENABLED,
            default_fallback_image_bucket=env.get('DEFAULT_FALLBACK_IMAGE_BUCKET', ''),
            default_fallback_image_key=env.get('DEFAULT_FALLBACK_IMAGE_KEY', ''),
            source_buckets=source_buckets,
            enable_signature=env.get('ENABLE_SIGNATURE', 'No') == ENABLED,
            secrets_manager=env.get('SECRETS_MANAGER', ''),
            secret_key=env.get('SECRET_KEY', ''),
        )

    @property
    def fallback_image_configured(self) -> bool:
        return (
            self.enable_default_fallback_image
            and not is_blank(self.default_fallback_image_bucket)
            and not is_blank(self.default_fallback_image_key)
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
