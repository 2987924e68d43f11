import json
from unittest.mock import MagicMock, patch

import pytest

from image_handler.config import Settings
from image_handler.lib import ImageHandlerError, ImageRequestInfo
from image_handler.main import handle_request, handler

CDN_URL = 'https://highres.example.com'
API_GATEWAY_EVENT = {'path': '/200x200/cat.jpg', 'requestContext': {'stage': 'prod'}}
ALB_EVENT = {'path': '/200x200/cat.jpg', 'requestContext': {'elb': {'targetGroupArn': 'arn:tg'}}}


@pytest.fixture
def settings():
    return Settings(highres_cdn_url=CDN_URL)


def make_request_info(**overrides):
    values = {
        'key': 'cat.jpg',
        'edits': {'resize': {'width': 200, 'height': 200}},
        'content_type': 'image/jpeg',
        'expires': 'Wed, 21 Oct 2026 07:28:00 GMT',
        'last_modified': 'Tue, 02 Jan 2024 03:04:05 GMT',
        'cache_control': 'max-age=60',
    }
    values.update(overrides)
    return ImageRequestInfo(**values)


def collaborators(request_info=None, setup_error=None, processed='cHJvY2Vzc2Vk', process_error=None):
    image_request = MagicMock()
    image_processor = MagicMock()
    if setup_error:
        image_request.setup.side_effect = setup_error
    else:
        image_request.setup.return_value = request_info or make_request_info()
    if process_error:
        image_processor.process.side_effect = process_error
    else:
        image_processor.process.return_value = processed
    return image_request, image_processor


def test_no_edits_redirects_to_highres_cdn(settings):
    image_request, image_processor = collaborators(make_request_info(edits={}))

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.to_dict() == {
        'statusCode': 301,
        'headers': {'Location': f'{CDN_URL}/cat.jpg'},
        'body': None,
        'isBase64Encoded': False,
    }
    image_processor.process.assert_not_called()


def test_successful_processing_builds_image_response(settings):
    image_request, image_processor = collaborators()

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.status_code == 200
    assert result.is_base64_encoded is True
    assert result.body == 'cHJvY2Vzc2Vk'
    assert result.headers['Content-Type'] == 'image/jpeg'
    assert result.headers['Expires'] == 'Wed, 21 Oct 2026 07:28:00 GMT'
    assert result.headers['Last-Modified'] == 'Tue, 02 Jan 2024 03:04:05 GMT'
    assert result.headers['Cache-Control'] == 'max-age=60'
    assert result.headers['Access-Control-Allow-Credentials'] is True
    image_processor.process.assert_called_once_with(image_request.setup.return_value)


def test_custom_headers_take_precedence(settings):
    custom = {'Cache-Control': 'no-store', 'Content-Type': 'image/webp', 'X-Custom': 'yes'}
    image_request, image_processor = collaborators(make_request_info(headers=custom))

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.headers['Cache-Control'] == 'no-store'
    assert result.headers['Content-Type'] == 'image/webp'
    assert result.headers['X-Custom'] == 'yes'
    assert result.headers['Expires'] == 'Wed, 21 Oct 2026 07:28:00 GMT'


def test_alb_success_omits_credentials_header(settings):
    image_request, image_processor = collaborators()

    result = handle_request(ALB_EVENT, image_request, image_processor, settings)

    assert result.status_code == 200
    assert 'Access-Control-Allow-Credentials' not in result.headers


def test_alb_error_omits_credentials_header(settings):
    image_request, image_processor = collaborators(setup_error=ImageHandlerError(400, 'BadRequest', 'x'))

    result = handle_request(ALB_EVENT, image_request, image_processor, settings)

    assert result.status_code == 400
    assert 'Access-Control-Allow-Credentials' not in result.headers


def test_too_large_processing_error_redirects(settings):
    error = ImageHandlerError(413, 'TooLargeImageException', 'The converted image is too large to return.')
    image_request, image_processor = collaborators(make_request_info(key='big.png'), process_error=error)

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.status_code == 301
    assert result.headers == {'Location': f'{CDN_URL}/big.png'}
    assert result.body is None


def test_setup_error_returns_structured_error(settings):
    error = ImageHandlerError(400, 'BadRequest', 'invalid edits')
    image_request, image_processor = collaborators(setup_error=error)

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings).to_dict()

    assert result['statusCode'] == 400
    assert result['body'] == '{"status":400,"code":"BadRequest","message":"invalid edits"}'
    assert result['isBase64Encoded'] is False
    assert result['headers']['Content-Type'] == 'application/json'
    image_processor.process.assert_not_called()


def test_setup_too_large_error_redirects_with_empty_key(settings):
    error = ImageHandlerError(413, 'TooLargeImageException', 'too large')
    image_request, image_processor = collaborators(setup_error=error)

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.status_code == 301
    assert result.headers['Location'] == f'{CDN_URL}/'


def test_unexpected_exception_becomes_generic_500(settings):
    image_request, image_processor = collaborators(process_error=RuntimeError('pixel pipeline exploded'))

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.status_code == 500
    assert json.loads(result.body) == {
        'message': 'Internal error. Please contact the system administrator.',
        'code': 'InternalError',
        'status': 500,
    }


def test_processing_error_served_with_fallback_image():
    settings = Settings(
        highres_cdn_url=CDN_URL,
        enable_default_fallback_image=True,
        default_fallback_image_bucket='fallback-bucket',
        default_fallback_image_key='fallback.png',
    )
    object_store = MagicMock()
    object_store.get_object.return_value = {'Body': b'png', 'ContentType': 'image/png', 'LastModified': None}
    image_request, image_processor = collaborators(process_error=ImageHandlerError(400, 'ImageEdits::CannotDecodeImage', 'x'))

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings, object_store)

    assert result.status_code == 400
    assert result.is_base64_encoded is True
    assert result.body == 'cG5n'
    assert result.headers['Cache-Control'] == 'max-age=31536000,public'


@patch('image_handler.fallback.get_object_store', side_effect=RuntimeError('no s3 client'))
def test_fallback_store_failure_still_returns_structured_error(mock_get_object_store):
    settings = Settings(
        highres_cdn_url=CDN_URL,
        enable_default_fallback_image=True,
        default_fallback_image_bucket='fallback-bucket',
        default_fallback_image_key='fallback.png',
    )
    image_request, image_processor = collaborators(setup_error=ImageHandlerError(400, 'BadRequest', 'invalid edits'))

    result = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings)

    assert result.status_code == 400
    assert result.is_base64_encoded is False
    assert json.loads(result.body) == {'status': 400, 'code': 'BadRequest', 'message': 'invalid edits'}


def test_identical_invocations_are_identical(settings):
    image_request, image_processor = collaborators()

    first = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings).to_dict()
    second = handle_request(API_GATEWAY_EVENT, image_request, image_processor, settings).to_dict()

    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)


def test_lambda_handler_returns_proxy_response(monkeypatch, lambda_context):
    monkeypatch.setenv('HIGHRES_CDN_URL', CDN_URL)
    image_request, image_processor = collaborators(make_request_info(key='dog.jpg', edits={}))

    with patch('image_handler.main.get_image_request', return_value=image_request), \
         patch('image_handler.main.get_image_processor', return_value=image_processor):
        response = handler({'path': '/dog.jpg'}, lambda_context)

    assert response == {
        'statusCode': 301,
        'headers': {'Location': f'{CDN_URL}/dog.jpg'},
        'body': None,
        'isBase64Encoded': False,
    }


def test_lambda_handler_never_raises(lambda_context):
    with patch('image_handler.main.get_image_request', side_effect=RuntimeError('no client')):
        response = handler({'path': '/dog.jpg'}, lambda_context)

    assert response['statusCode'] == 500
    assert response['isBase64Encoded'] is False
