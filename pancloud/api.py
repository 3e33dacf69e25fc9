import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from endpoints import AUTH, FILES, SHARE, SHARE_URL_PREFIX, UPLOAD
from .client import CloudClient
from .errors import ApiError
from .models import DownloadRequest, FileEntry, FileKind, ShareResult

SIGN_IN_OK = 200
FILE_EXISTS = 5060

# duplicate policy for upload_request
DUPLICATE_ASK = 0
DUPLICATE_OVERWRITE = 1
DUPLICATE_RENAME = 2

SHARE_EXPIRATION = "2099-12-12T08:00:00+08:00"

_HREF_RE = re.compile(r"href='(https?://[^']+)'")


def _json_or_raise(resp: httpx.Response, ok_code: int = 0) -> Dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError as exc:
        raise ApiError(None, f"Non-JSON response: {resp.text[:200]}") from exc
    if not isinstance(payload, dict):
        raise ApiError(None, f"Unexpected response: {payload!r}")
    code = payload.get("code")
    if code != ok_code:
        msg = payload.get("message") or "Unknown error"
        raise ApiError(code, msg)
    return payload


def _call(client: CloudClient, endpoint: Dict[str, str], **kwargs: Any) -> httpx.Response:
    return client.request(endpoint["method"], endpoint["path"], **kwargs)


def _entry_from_row(row: Dict[str, Any]) -> FileEntry:
    return FileEntry(
        id=int(row.get("FileId", 0)),
        name=row.get("FileName") or "",
        size_bytes=int(row.get("Size") or 0),
        kind=FileKind.DIRECTORY if int(row.get("Type") or 0) == 1 else FileKind.FILE,
        content_hash=row.get("Etag") or None,
        storage_key_flag=row.get("S3KeyFlag") or None,
    )


def _list_params(parent_id: int, page: int, limit: int) -> Dict[str, str]:
    return {
        "driveId": "0",
        "limit": str(limit),
        "next": "0",
        "orderBy": "file_id",
        "orderDirection": "desc",
        "parentFileId": str(parent_id),
        "trashed": "false",
        "SearchData": "",
        "Page": str(page),
        "OnlyLookAbnormalFile": "0",
    }


def sign_in(client: CloudClient, username: str, password: str) -> str:
    payload = {"type": 1, "passport": username, "password": password}
    resp = _call(client, AUTH["sign_in"], json=payload, headers={"authorization": ""})
    data = _json_or_raise(resp, ok_code=SIGN_IN_OK).get("data") or {}
    token = data.get("token")
    if not token:
        raise ApiError(SIGN_IN_OK, "Sign-in response carries no token")
    return f"Bearer {token}"


def check_token(client: CloudClient, token: str) -> bool:
    """True when the service accepts ``token`` for a one-item root listing."""
    resp = _call(
        client,
        FILES["list"],
        params=_list_params(0, 1, 1),
        headers={"authorization": token},
    )
    try:
        _json_or_raise(resp)
    except ApiError:
        return False
    return True


def list_files(client: CloudClient, parent_id: int, page: int = 1, limit: int = 100) -> Tuple[List[FileEntry], int]:
    resp = _call(client, FILES["list"], params=_list_params(parent_id, page, limit))
    data = _json_or_raise(resp).get("data") or {}
    rows = data.get("InfoList") or []
    return [_entry_from_row(row) for row in rows], int(data.get("Total") or 0)


def list_all_files(client: CloudClient, parent_id: int, limit: int = 100) -> List[FileEntry]:
    entries: List[FileEntry] = []
    total: Optional[int] = None
    page = 1
    while total is None or len(entries) < total:
        items, page_total = list_files(client, parent_id, page=page, limit=limit)
        if total is None:
            total = page_total
        if not items:
            break
        entries.extend(items)
        page += 1
    return entries


def get_download_url(client: CloudClient, request: DownloadRequest) -> str:
    if request.file_kind == FileKind.DIRECTORY:
        payload: Dict[str, Any] = {"fileIdList": [{"fileId": request.file_id}]}
        endpoint = FILES["batch_download_info"]
    else:
        payload = {
            "driveId": 0,
            "fileId": request.file_id,
            "etag": request.content_hash or "",
            "s3keyFlag": request.storage_key_flag or "",
            "type": 0,
            "fileName": request.file_name,
            "size": request.size,
        }
        endpoint = FILES["download_info"]
    data = _json_or_raise(_call(client, endpoint, json=payload)).get("data") or {}
    url = data.get("DownloadUrl")
    if not url:
        raise ApiError(0, "Empty download URL")
    return url


def resolve_download_url(client: CloudClient, url: str) -> str:
    """Follow the interstitial page the service hands out instead of the file."""
    with client.without_redirects() as plain:
        resp = plain.get(url)
        location = resp.headers.get("location")
        if location:
            return location
        match = _HREF_RE.search(resp.text or "")
    if not match:
        raise ApiError(None, "Unable to find the download address")
    return match.group(1)


def create_folder(client: CloudClient, parent_id: int, name: str) -> None:
    payload = {
        "driveId": 0,
        "etag": "",
        "fileName": name,
        "parentFileId": parent_id,
        "size": 0,
        "type": 1,
        "duplicate": DUPLICATE_OVERWRITE,
        "NotReuse": True,
        "event": "newCreateFolder",
        "operateType": 1,
    }
    _json_or_raise(_call(client, FILES["create_folder"], json=payload))


def trash_files(client: CloudClient, file_ids: Iterable[int]) -> None:
    payload = {
        "driveId": 0,
        "fileTrashInfoList": [{"fileId": int(i)} for i in file_ids],
        "operation": True,
    }
    _json_or_raise(_call(client, FILES["trash"], json=payload))


def create_share(client: CloudClient, file_ids: Iterable[int], password: Optional[str] = None) -> ShareResult:
    ids = [str(int(i)) for i in file_ids]
    if not ids:
        raise ApiError(None, "No file selected")
    pwd = password or ""
    payload = {
        "driveId": 0,
        "expiration": SHARE_EXPIRATION,
        "fileIdList": ",".join(ids),
        "shareName": "My Share",
        "sharePwd": pwd,
        "event": "shareCreate",
    }
    data = _json_or_raise(_call(client, SHARE["create"], json=payload)).get("data") or {}
    key = data.get("ShareKey")
    if not key:
        raise ApiError(0, "No ShareKey returned")
    return ShareResult(share_url=f"{SHARE_URL_PREFIX}{key}", share_password=pwd or None)


def upload_request(client: CloudClient, parent_id: int, file_name: str, etag: str, size: int) -> Dict[str, Any]:
    def payload(duplicate: int) -> Dict[str, Any]:
        return {
            "driveId": 0,
            "etag": etag,
            "fileName": file_name,
            "parentFileId": parent_id,
            "size": size,
            "type": 0,
            "duplicate": duplicate,
        }

    try:
        resp = _call(client, UPLOAD["request"], json=payload(DUPLICATE_ASK))
        return _json_or_raise(resp).get("data") or {}
    except ApiError as exc:
        if exc.code != FILE_EXISTS:
            raise
    client.logger.info("File %s already exists, uploading under a new name", file_name)
    resp = _call(client, UPLOAD["request"], json=payload(DUPLICATE_RENAME))
    return _json_or_raise(resp).get("data") or {}


def _multipart_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "bucket": data.get("Bucket"),
        "key": data.get("Key"),
        "uploadId": data.get("UploadId"),
        "storageNode": data.get("StorageNode") or "",
    }


def list_upload_parts(client: CloudClient, data: Dict[str, Any]) -> None:
    _call(client, UPLOAD["list_parts"], json=_multipart_payload(data))


def prepare_upload_part(client: CloudClient, data: Dict[str, Any], part_number: int) -> str:
    payload = _multipart_payload(data)
    payload["partNumberStart"] = part_number
    payload["partNumberEnd"] = part_number + 1
    body = _json_or_raise(_call(client, UPLOAD["prepare_parts"], json=payload)).get("data") or {}
    url = (body.get("presignedUrls") or {}).get(str(part_number))
    if not url:
        raise ApiError(0, f"No upload URL for part {part_number}")
    return url


def complete_multipart(client: CloudClient, data: Dict[str, Any]) -> None:
    _call(client, UPLOAD["complete_multipart"], json=_multipart_payload(data))


def upload_complete(client: CloudClient, file_id: int) -> None:
    _call(client, UPLOAD["complete"], json={"fileId": file_id})
