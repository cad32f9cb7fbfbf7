import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError
from fastapi import UploadFile
from starlette.datastructures import Headers

from support_chat.core.errors import ExternalServiceException, ValidationException
from support_chat.services import file_service


def make_upload(content: bytes, filename: str = "invoice.pdf", content_type: str = "application/pdf") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type})
    )


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://storage.example.com/signed"
    with patch.object(file_service.settings, "s3_bucket_name", "chat-files"), \
            patch.object(file_service, "get_s3_client", return_value=client):
        yield client


class TestFileValidation:
    """파일 검증 테스트"""

    def test_get_file_extension(self):
        """파일 확장자 추출 테스트"""
        assert file_service.get_file_extension("test.jpg") == ".jpg"
        assert file_service.get_file_extension("report.PDF") == ".pdf"
        assert file_service.get_file_extension("noextension") == ""

    def test_generate_file_key(self):
        """사용자별 고유 키 생성 테스트"""
        key1 = file_service.generate_file_key("user-1", "photo.png")
        key2 = file_service.generate_file_key("user-1", "photo.png")

        assert key1 != key2
        assert key1.startswith("chat/user-1/")
        assert key1.endswith(".png")

    def test_validate_file_size(self):
        assert file_service.validate_file_size(1024) is True
        assert file_service.validate_file_size(file_service.settings.max_upload_size) is True
        assert file_service.validate_file_size(file_service.settings.max_upload_size + 1) is False


class TestStorageClient:

    def test_not_configured(self):
        with patch.object(file_service.settings, "s3_bucket_name", None):
            with pytest.raises(ExternalServiceException):
                file_service.get_s3_client()

    def test_client_is_created_once(self):
        with patch.object(file_service.settings, "s3_bucket_name", "chat-files"), \
                patch.object(file_service, "_s3_client", None), \
                patch.object(file_service.boto3, "client") as boto_client:
            first = file_service.get_s3_client()
            second = file_service.get_s3_client()

        assert first is second
        boto_client.assert_called_once()


class TestFileUpload:
    """파일 업로드 테스트"""

    @pytest.mark.asyncio
    async def test_upload(self, s3_client):
        result = await file_service.upload_chat_file(make_upload(b"%PDF-1.4 data"), "user-1")

        assert result["file_name"] == "invoice.pdf"
        assert result["file_size"] == len(b"%PDF-1.4 data")
        assert result["file_type"] == "application/pdf"
        assert result["file_key"].startswith("chat/user-1/")

        s3_client.put_object.assert_called_once()
        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "chat-files"
        assert kwargs["Key"] == result["file_key"]

    @pytest.mark.asyncio
    async def test_file_too_large(self, s3_client):
        content = b"x" * (file_service.settings.max_upload_size + 1)

        with pytest.raises(ValidationException):
            await file_service.upload_chat_file(make_upload(content), "user-1")

        s3_client.put_object.assert_not_called()

    @pytest.mark.asyncio
    async def test_storage_error(self, s3_client):
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "boom"}}, "PutObject"
        )

        with pytest.raises(ExternalServiceException):
            await file_service.upload_chat_file(make_upload(b"data"), "user-1")

    @pytest.mark.asyncio
    async def test_signed_url(self, s3_client):
        url = await file_service.generate_signed_url("chat/user-1/abc.pdf", expires_in=60)

        assert url == "https://storage.example.com/signed"
        s3_client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "chat-files", "Key": "chat/user-1/abc.pdf"},
            ExpiresIn=60
        )
