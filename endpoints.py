# Captured from the Android client traffic; update if endpoints change.

BASE_URL = "https://www.123pan.com"

SHARE_URL_PREFIX = "https://www.123pan.com/s/"

USER_AGENT = "123pan/v2.4.0(Android_7.1.2;Xiaomi)"

DEVICE_HEADERS = {
    "platform": "android",
    "app-version": "61",
    "x-app-version": "2.4.0",
    "x-channel": "1004",
    "devicetype": "M2101K9C",
    "devicename": "Xiaomi",
    "osversion": "Android_7.1.2",
}

AUTH = {
    "sign_in": {
        "method": "POST",
        "path": "/b/api/user/sign_in",
    },
}

FILES = {
    "list": {
        "method": "GET",
        "path": "/b/api/file/list/new",
    },
    "download_info": {
        "method": "POST",
        "path": "/a/api/file/download_info",
    },
    "batch_download_info": {
        "method": "POST",
        "path": "/a/api/file/batch_download_info",
    },
    "create_folder": {
        "method": "POST",
        "path": "/a/api/file/upload_request",
    },
    "trash": {
        "method": "POST",
        "path": "/a/api/file/trash",
    },
}

UPLOAD = {
    "request": {
        "method": "POST",
        "path": "/b/api/file/upload_request",
    },
    "list_parts": {
        "method": "POST",
        "path": "/b/api/file/s3_list_upload_parts",
    },
    "prepare_parts": {
        "method": "POST",
        "path": "/b/api/file/s3_repare_upload_parts_batch",
    },
    "complete_multipart": {
        "method": "POST",
        "path": "/b/api/file/s3_complete_multipart_upload",
    },
    "complete": {
        "method": "POST",
        "path": "/b/api/file/upload_complete",
    },
}

SHARE = {
    "create": {
        "method": "POST",
        "path": "/a/api/share/create",
    },
}
