from __future__ import annotations

import msgspec
import pytest
from conftest import make_job

from app.jobs.models import JobView, TranscriptJobPayload, UploadJobPayload, YoutubeJobPayload, decode_payload, encode_payload, redact_payload


def test_payload_tag_selects_the_struct() -> None:
  decoded = decode_payload({"job_type": "youtube", "url": "https://youtu.be/dQw4w9WgXcQ"})
  assert isinstance(decoded, YoutubeJobPayload)
  assert decoded.language == "en"
  assert decoded.tone == "engaging"


def test_upload_content_is_stored_as_base64() -> None:
  encoded = encode_payload(UploadJobPayload(file_name="a.mp3", content_type="audio/mpeg", content=b"\x00\x01raw"))
  assert isinstance(encoded["content"], str)
  assert encoded["job_type"] == "upload"

  decoded = decode_payload(encoded)
  assert isinstance(decoded, UploadJobPayload)
  assert decoded.content == b"\x00\x01raw"


def test_unknown_fields_are_rejected() -> None:
  with pytest.raises(msgspec.ValidationError):
    decode_payload({"job_type": "transcript", "transcript": "hi", "speaker": "me"})


def test_unknown_tag_is_rejected() -> None:
  with pytest.raises(msgspec.ValidationError):
    decode_payload({"job_type": "podcast", "url": "x"})


def test_redaction_only_touches_uploads() -> None:
  upload = {"job_type": "upload", "file_name": "a.mp3", "content_type": "audio/mpeg", "content": "AAE="}
  transcript = encode_payload(TranscriptJobPayload(transcript="hi"))

  assert redact_payload(upload) == {"job_type": "upload", "file_name": "a.mp3", "content_type": "audio/mpeg"}
  assert redact_payload(transcript) == transcript
  assert "content" in upload


def test_view_is_redacted() -> None:
  record = make_job("j1", "u1", job_type="upload", payload={"job_type": "upload", "file_name": "a.mp3", "content_type": "audio/mpeg", "content": "AAE="})
  view = JobView.from_record(record)
  assert "content" not in view.payload
  assert view.status == "pending"
