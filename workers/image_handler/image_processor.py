import base64
from io import BytesIO
from typing import Any, Dict, Optional

from PIL import Image, ImageOps, UnidentifiedImageError
from aws_lambda_powertools import Logger

from .lib import ErrorCodes, ImageHandlerError, ImageRequestInfo, StatusCodes

logger = Logger(service="image-processor")

# Lambda 응답 페이로드 한도 (base64 문자열 길이 기준)
MAX_BASE64_RESPONSE_LENGTH = 6 * 1024 * 1024
MAX_DIMENSION = 16384

PILLOW_FORMATS = {
    'jpeg': 'JPEG',
    'jpg': 'JPEG',
    'png': 'PNG',
    'webp': 'WEBP',
    'gif': 'GIF',
    'tiff': 'TIFF',
}


class ImageProcessor:
    """Pillow 로 편집 작업을 적용하고 base64 문자열을 반환"""

    def __init__(self, max_response_length: int = MAX_BASE64_RESPONSE_LENGTH):
        self.max_response_length = max_response_length

    def process(self, request_info: ImageRequestInfo) -> str:
        image = self.decode(request_info.original_image)
        source_format = (image.format or '').lower()
        if source_format not in PILLOW_FORMATS:
            source_format = 'png'

        edited = self.apply_edits(image, request_info.edits)

        output_format = request_info.edits.get('toFormat') or request_info.output_format or source_format
        encoded = self.encode(edited, output_format)

        base64_image = base64.b64encode(encoded).decode('utf-8')
        if len(base64_image) > self.max_response_length:
            logger.warning(f"변환된 이미지가 응답 한도를 초과: {len(base64_image)} bytes")
            raise ImageHandlerError(
                StatusCodes.REQUEST_TOO_LONG,
                ErrorCodes.TOO_LARGE_IMAGE,
                'The converted image is too large to return.'
            )

        logger.info(f"이미지 처리 완료: {request_info.key} -> {output_format}, {len(encoded)} bytes")
        return base64_image

    def decode(self, original_image: Optional[bytes]) -> Image.Image:
        if not original_image:
            raise ImageHandlerError(
                StatusCodes.INTERNAL_SERVER_ERROR,
                ErrorCodes.CANNOT_FETCH_IMAGE,
                'The original image could not be retrieved. Please contact the system administrator.'
            )
        try:
            image = Image.open(BytesIO(original_image))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"원본 이미지 디코딩 실패: {e}")
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.CANNOT_DECODE_IMAGE,
                'The original image could not be decoded.'
            )
        return image

    def apply_edits(self, image: Image.Image, edits: Dict[str, Any]) -> Image.Image:
        for name, params in edits.items():
            if name == 'resize':
                image = self.resize(image, params or {})
            elif name == 'grayscale' and params:
                image = ImageOps.grayscale(image)
            elif name == 'flip' and params:
                image = ImageOps.flip(image)
            elif name == 'flop' and params:
                image = ImageOps.mirror(image)
            elif name == 'rotate' and params:
                # 양수 각도는 시계 방향 회전
                image = image.rotate(-self.rotation_angle(params), expand=True)
            elif name != 'toFormat':
                logger.debug(f"지원하지 않는 편집 무시: {name}")
        return image

    @staticmethod
    def rotation_angle(params: Any) -> float:
        if isinstance(params, bool) or not isinstance(params, (int, float, str)):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid rotate angle')
        try:
            return float(params)
        except ValueError:
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid rotate angle')

    @staticmethod
    def dimension(value: Any) -> Optional[int]:
        """0 또는 미지정은 자동, 그 외에는 1 ~ MAX_DIMENSION 정수"""
        if value is None or value == 0 or value == '':
            return None
        if isinstance(value, bool):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid resize dimensions')
        try:
            size = int(value)
        except (TypeError, ValueError):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid resize dimensions')
        if not 0 < size <= MAX_DIMENSION:
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.BAD_REQUEST,
                f'Resize dimensions must be between 1 and {MAX_DIMENSION}.'
            )
        return size

    def resize(self, image: Image.Image, params: Dict[str, Any]) -> Image.Image:
        if not isinstance(params, dict):
            raise ImageHandlerError(StatusCodes.BAD_REQUEST, ErrorCodes.BAD_REQUEST, 'invalid edits')

        width = self.dimension(params.get('width'))
        height = self.dimension(params.get('height'))
        fit = params.get('fit', 'cover')

        if not width and not height:
            return image

        if not width or not height:
            # 한 쪽만 지정되면 비율 유지
            ratio = (width / image.width) if width else (height / image.height)
            size = (max(1, round(image.width * ratio)), max(1, round(image.height * ratio)))
            return image.resize(size)

        size = (width, height)
        if fit == 'fill':
            return image.resize(size)
        if fit == 'inside':
            return ImageOps.contain(image, size)
        if fit == 'contain':
            return ImageOps.pad(image, size)
        return ImageOps.fit(image, size)

    def encode(self, image: Image.Image, output_format: str) -> bytes:
        pillow_format = PILLOW_FORMATS.get(output_format.lower())
        if pillow_format is None:
            raise ImageHandlerError(
                StatusCodes.BAD_REQUEST,
                ErrorCodes.UNSUPPORTED_FORMAT,
                f'The output format {output_format} is not supported.'
            )

        if pillow_format == 'JPEG' and image.mode not in ('RGB', 'L'):
            image = image.convert('RGB')

        buffer = BytesIO()
        image.save(buffer, format=pillow_format)
        return buffer.getvalue()
