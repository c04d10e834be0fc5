import io
import logging
import os
from dataclasses import replace
from typing import Any, Callable

import requests
from tqdm import tqdm
from tqdm.utils import CallbackIOWrapper
from urllib3 import encode_multipart_formdata

from peer_sync import decoding, guard
from peer_sync.constants import Constants
from peer_sync.dictionaries import BroadcastRequest, ConnectRequest, RawMessage
from peer_sync.errors import ActionError, ConnectivityError, DataDecodingError
from peer_sync.models import FileRecord, Peer, UploadFile

logger = logging.getLogger(Constants.LOGGER_NAME)

ProgressCallback = Callable[[int, int], None]


def first_token(value: str) -> str:
    """
    Cuts a user-supplied address or port at the first space, so "8081 extra" becomes "8081".
    """
    parts = value.strip().split(" ")
    return parts[0] if parts else ""


def resolve_backend_url(port: str | int | None = None, url: str | None = None) -> str:
    """
    Works out where the node's API lives: an explicit url wins, otherwise
    http://localhost:<port>, defaulting to port 8080.
    """
    if url:
        cleaned = first_token(url).rstrip("/")
        if cleaned:
            return cleaned
    cleaned_port = first_token(str(port)) if port is not None else ""
    if not cleaned_port:
        cleaned_port = Constants.DEFAULT_PORT
    return f"http://{Constants.DEFAULT_HOST}:{cleaned_port}"


class NodeAPI:
    """
    Blocking client for the node's HTTP status API. The poller and the actions
    call these from worker threads, so nothing here touches shared state.
    """

    def __init__(self, base_url: str):
        self.base_url = first_token(base_url).rstrip("/")

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def __get_json(self, path: str) -> Any:
        try:
            ret = requests.get(self.url(path), timeout=Constants.REQUEST_TIMEOUT_SEC)
        except requests.Timeout as t:
            logger.debug(f"[Client] Timeout on GET {path}: {t}")
            raise ConnectivityError("Timed out waiting for backend server") from t
        except requests.RequestException as e:
            logger.debug(f"[Client] GET {path} failed: {e}")
            raise ConnectivityError("Failed to connect to backend server") from e

        if not ret.ok:
            logger.debug(f"[Client] GET {path} returned {ret.status_code}")
            raise ConnectivityError(f"Backend server returned {ret.status_code} for {path}",
                                    status_code=ret.status_code)
        return decoding.decode_json(ret.content)

    def __read(self, path: str, decoder: Callable[[Any], Any]) -> Any:
        data = self.__get_json(path)
        try:
            return decoder(data)
        except DataDecodingError:
            raise
        except Exception as error:
            logger.debug(f"[Client] Couldn't decode {path}: {error!r}")
            raise DataDecodingError(f"Error decoding {path} response.") from error

    def get_peers(self) -> list[Peer]:
        return self.__read("/api/peers", decoding.decode_peers)

    def get_messages(self) -> list[RawMessage]:
        return self.__read("/api/messages", decoding.decode_messages)

    def get_local_addr(self) -> str:
        return self.__read("/api/local", decoding.decode_local_addr)

    def get_files(self) -> list[FileRecord]:
        return self.__read("/api/files", decoding.decode_files)

    def __post_action(self, action: str, path: str, payload: dict, failure_message: str) -> None:
        try:
            logger.info(f"[Client] Sending {action} request...")
            ret = requests.post(self.url(path), json=payload, timeout=Constants.REQUEST_TIMEOUT_SEC)
        except requests.RequestException as e:
            raise ActionError(action, failure_message) from e

        logger.info(f"[Client] Received HTTP Response from {ret.url} with code {ret.status_code}")
        if not ret.ok:
            body = ret.text.strip()
            message = f"{failure_message}: {body}" if body else failure_message
            raise ActionError(action, message, status_code=ret.status_code, body=body)

    def connect(self, addr: str) -> None:
        self.__post_action("connect", "/api/connect", dict(ConnectRequest(addr=addr)),
                           "Failed to connect to peer")

    def broadcast(self, message: str) -> None:
        self.__post_action("broadcast", "/api/broadcast", dict(BroadcastRequest(message=message)),
                           "Failed to send message")

    def send_file(self, peer_id: str, file: UploadFile,
                  progress_callback: ProgressCallback | None = None) -> None:
        """
        Posts the file as multipart form data ("file", "peerId").
        progress_callback is called with (bytes_sent, bytes_total) as the body is read
        off by the transport, from whatever thread this runs on.
        Anything but a 200 raises an ActionError carrying the response body.
        """
        with open(file.path, "rb") as f:
            data = f.read()

        # the file may have grown since it was picked
        rejection = guard.validate(replace(file, size=len(data)))
        if rejection.has_error():
            raise ActionError("send_file", str(rejection))

        body, content_type = encode_multipart_formdata([
            ("file", (file.name, data, "application/octet-stream")),
            ("peerId", peer_id),
        ])
        del data  # body holds its own copy
        total = len(body)
        sent = 0

        def on_read(n: int) -> None:
            nonlocal sent
            if not n:
                return
            sent += n
            if progress_callback:
                progress_callback(sent, total)

        stream = CallbackIOWrapper(on_read, io.BytesIO(body), "read")
        try:
            logger.info(f"[Client] Uploading {file.name} ({file.size} bytes) for peer {peer_id}...")
            ret = requests.post(
                self.url("/api/sendfile"),
                data=stream,
                headers={"Content-Type": content_type},
                timeout=Constants.UPLOAD_TIMEOUT_SEC
            )
        except requests.RequestException as e:
            raise ActionError("send_file", "Network error occurred") from e

        if ret.status_code != 200:
            body_text = ret.text.strip()
            raise ActionError("send_file", body_text or "Failed to send file",
                              status_code=ret.status_code, body=body_text)
        logger.info(f"[Client] Sent {file.name} to {peer_id}")

    def download_file(self, name: str, dest_dir: str) -> str:
        """
        Streams /api/download?name=<name> into dest_dir with a progress bar.
        :return: the path the file was written to.
        """
        try:
            ret = requests.get(self.url("/api/download"), params={"name": name},
                               timeout=Constants.REQUEST_TIMEOUT_SEC, stream=True)
        except requests.RequestException as e:
            raise ActionError("download", f"Failed to download {name}") from e

        try:
            if not ret.ok:
                body = ret.text.strip()
                raise ActionError("download", body or f"Failed to download {name}",
                                  status_code=ret.status_code, body=body)

            os.makedirs(dest_dir, exist_ok=True)
            path = os.path.join(dest_dir, os.path.basename(name))
            total_size = int(ret.headers.get("Content-Length", 0))
            progress_bar = tqdm(total=total_size, unit="iB", unit_scale=True, desc=name)
            try:
                with open(path, "wb") as f:
                    for chunk in ret.iter_content(chunk_size=Constants.DOWNLOAD_BLOCK_SIZE):
                        if chunk:
                            f.write(chunk)
                            progress_bar.update(len(chunk))
            except requests.RequestException as e:
                raise ActionError("download", f"Download of {name} was interrupted") from e
            finally:
                progress_bar.close()
        finally:
            ret.close()

        logger.info(f"[Client] Downloaded {name} to {path}")
        return path
