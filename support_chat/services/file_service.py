"""
File attachment service layer.

채팅 첨부 파일을 오브젝트 스토리지(S3)에 올리고, 저장된 키로 서명된
다운로드 URL을 발급합니다. 메시지에는 불투명한 파일 키와 메타데이터만 저장됩니다.
"""

import uuid
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from support_chat.core.config import settings
from support_chat.core.errors import ExternalServiceException, ValidationException
from support_chat.core.logging import get_logger

logger = get_logger(__name__)

_s3_client = None


# =============================================================================
# File Utilities
# =============================================================================

def get_file_extension(filename: str) -> str:
    """파일 확장자 추출"""
    return Path(filename).suffix.lower()


def generate_file_key(user_id: str, original_filename: str) -> str:
    """오브젝트 스토리지 키 생성 (chat/<user_id>/<uuid><ext>)"""
    extension = get_file_extension(original_filename)
    return f"chat/{user_id}/{uuid.uuid4()}{extension}"


def validate_file_size(file_size: int) -> bool:
    """파일 크기 검증"""
    return file_size <= settings.max_upload_size


def is_storage_configured() -> bool:
    return bool(settings.s3_bucket_name)


def get_s3_client():
    """S3 클라이언트 (최초 호출 시 생성)"""
    global _s3_client

    if not is_storage_configured():
        raise ExternalServiceException("object_storage", "Object storage is not configured")

    if _s3_client is None:
        _s3_client = boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
        )
    return _s3_client


# =============================================================================
# File Operations
# =============================================================================

async def upload_chat_file(file: UploadFile, user_id: str) -> dict:
    """
    채팅 첨부 파일 업로드

    Returns:
        send_message의 파일 필드로 그대로 사용할 수 있는 메타데이터
        {"file_key", "file_name", "file_size", "file_type"}

    Raises:
        ValidationException: 파일이 없거나 크기 제한을 넘는 경우
        ExternalServiceException: 스토리지 미설정 또는 업로드 실패
    """
    if not file.filename:
        raise ValidationException("No file provided")

    content = await file.read()
    if not validate_file_size(len(content)):
        raise ValidationException(
            f"File size exceeds maximum limit of {settings.max_upload_size // (1024 * 1024)}MB",
            details={"max_size": settings.max_upload_size, "size": len(content)}
        )

    client = get_s3_client()
    file_key = generate_file_key(user_id, file.filename)

    try:
        await run_in_threadpool(
            client.put_object,
            Bucket=settings.s3_bucket_name,
            Key=file_key,
            Body=content,
            ContentType=file.content_type or "application/octet-stream",
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to upload file for user {user_id}: {e}")
        raise ExternalServiceException("object_storage", "Failed to upload file")

    logger.info(f"Uploaded chat file {file_key}", extra={
        "user_id": user_id,
        "file_size": len(content),
        "event_type": "file_upload"
    })

    return {
        "file_key": file_key,
        "file_name": file.filename,
        "file_size": len(content),
        "file_type": file.content_type,
    }


async def generate_signed_url(file_key: str, expires_in: Optional[int] = None) -> str:
    """저장된 파일 키로 서명된 다운로드 URL 발급"""
    client = get_s3_client()
    expires = expires_in or settings.signed_url_expires_seconds

    try:
        return await run_in_threadpool(
            client.generate_presigned_url,
            "get_object",
            Params={"Bucket": settings.s3_bucket_name, "Key": file_key},
            ExpiresIn=expires,
        )
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to sign url for {file_key}: {e}")
        raise ExternalServiceException("object_storage", "Failed to generate file url")
