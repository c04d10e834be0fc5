import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import requests

from peer_sync.api import NodeAPI, first_token, resolve_backend_url
from peer_sync.errors import ActionError, ConnectivityError, DataDecodingError
from peer_sync.models import FileRecord, Peer, UploadFile


def response(status_code=200, content=b"", text="", headers=None):
    ret = MagicMock()
    ret.status_code = status_code
    ret.ok = status_code < 400
    ret.content = content
    ret.text = text
    ret.url = "http://localhost:8080/api"
    ret.headers = headers or {}
    return ret


class BackendUrlTest(unittest.TestCase):

    def test_default_port(self):
        self.assertEqual("http://localhost:8080", resolve_backend_url())
        self.assertEqual("http://localhost:8080", resolve_backend_url(port=""))

    def test_port_is_cut_at_first_space(self):
        self.assertEqual("http://localhost:8081", resolve_backend_url(port="8081 something"))
        self.assertEqual("http://localhost:9000", resolve_backend_url(port=9000))

    def test_url_wins_over_port(self):
        self.assertEqual("http://10.0.0.5:8080", resolve_backend_url(port="9000", url="http://10.0.0.5:8080/ junk"))

    def test_first_token(self):
        self.assertEqual("/ip4/1.2.3.4/tcp/1", first_token(" /ip4/1.2.3.4/tcp/1 extra tokens"))
        self.assertEqual("", first_token("   "))


class NodeAPIReadTest(unittest.TestCase):

    def setUp(self):
        self.api = NodeAPI("http://localhost:8080")

    @patch("peer_sync.api.requests.get")
    def test_get_peers(self, get):
        get.return_value = response(content=b'[{"ID": "peerA", "Addrs": ["/ip4/1.2.3.4/tcp/1"]}]')
        self.assertEqual([Peer("peerA", ("/ip4/1.2.3.4/tcp/1",))], self.api.get_peers())
        self.assertEqual("http://localhost:8080/api/peers", get.call_args.args[0])

    @patch("peer_sync.api.requests.get")
    def test_get_messages_local_and_files(self, get):
        get.return_value = response(content=b'[{"from": "A", "content": "FILE_PROGRESS:a:1"}]')
        self.assertEqual([{"from": "A", "content": "FILE_PROGRESS:a:1"}], self.api.get_messages())

        get.return_value = response(content=b'{"addr": "/ip4/127.0.0.1/tcp/4001/p2p/QmLocal"}')
        self.assertEqual("/ip4/127.0.0.1/tcp/4001/p2p/QmLocal", self.api.get_local_addr())

        get.return_value = response(content=b'[{"Name": "a.txt", "From": "peerA", "Size": 3}]')
        self.assertEqual([FileRecord("a.txt", "peerA", 3)], self.api.get_files())

    @patch("peer_sync.api.requests.get")
    def test_null_list(self, get):
        get.return_value = response(content=b"null")
        self.assertEqual([], self.api.get_files())

    @patch("peer_sync.api.requests.get")
    def test_unreachable_backend(self, get):
        get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ConnectivityError) as cm:
            self.api.get_peers()
        self.assertEqual("Failed to connect to backend server", str(cm.exception))

    @patch("peer_sync.api.requests.get")
    def test_timeout(self, get):
        get.side_effect = requests.Timeout("slow")
        with self.assertRaises(ConnectivityError):
            self.api.get_messages()

    @patch("peer_sync.api.requests.get")
    def test_bad_status(self, get):
        get.return_value = response(status_code=502)
        with self.assertRaises(ConnectivityError) as cm:
            self.api.get_files()
        self.assertEqual(502, cm.exception.status_code)

    @patch("peer_sync.api.requests.get")
    def test_bad_body(self, get):
        get.return_value = response(content=b"not json")
        with self.assertRaises(DataDecodingError):
            self.api.get_peers()

    @patch("peer_sync.api.requests.get")
    def test_unexpected_decode_failure_is_a_decoding_error(self, get):
        get.return_value = response(content=b'[{"Name": "a.txt", "Size": 1}]')
        with patch("peer_sync.api.decoding.decode_files", side_effect=TypeError("boom")):
            with self.assertRaises(DataDecodingError) as cm:
                self.api.get_files()
        self.assertIsInstance(cm.exception.__cause__, TypeError)


class NodeAPIActionTest(unittest.TestCase):

    def setUp(self):
        self.api = NodeAPI("http://localhost:8080")

    @patch("peer_sync.api.requests.post")
    def test_connect_posts_addr(self, post):
        post.return_value = response()
        self.api.connect("/ip4/1.2.3.4/tcp/1")
        self.assertEqual("http://localhost:8080/api/connect", post.call_args.args[0])
        self.assertEqual({"addr": "/ip4/1.2.3.4/tcp/1"}, post.call_args.kwargs["json"])

    @patch("peer_sync.api.requests.post")
    def test_connect_server_error(self, post):
        post.return_value = response(status_code=500, text="dial backoff\n")
        with self.assertRaises(ActionError) as cm:
            self.api.connect("/ip4/1.2.3.4/tcp/1")
        self.assertEqual("connect", cm.exception.action)
        self.assertEqual("Failed to connect to peer: dial backoff", str(cm.exception))
        self.assertEqual("dial backoff", cm.exception.body)

    @patch("peer_sync.api.requests.post")
    def test_broadcast_transport_error(self, post):
        post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(ActionError) as cm:
            self.api.broadcast("hi")
        self.assertEqual("Failed to send message", str(cm.exception))


class NodeAPIFileTest(unittest.TestCase):

    def setUp(self):
        self.api = NodeAPI("http://localhost:8080")
        self.tmp = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmp.name, "report.pdf")
        with open(path, "wb") as f:
            f.write(b"%PDF" + b"0" * 20000)
        self.file = UploadFile.from_path(path)

    def tearDown(self):
        self.tmp.cleanup()

    @patch("peer_sync.api.requests.post")
    def test_send_file_reports_progress(self, post):
        sent_body = bytearray()

        def fake_post(url, data=None, headers=None, timeout=None):
            # read the body the way the transport would
            while True:
                chunk = data.read(4096)
                if not chunk:
                    break
                sent_body.extend(chunk)
            return response(status_code=200)

        post.side_effect = fake_post
        progress = []
        self.api.send_file("peerA", self.file, lambda sent, total: progress.append((sent, total)))

        self.assertTrue(post.call_args.kwargs["headers"]["Content-Type"].startswith("multipart/form-data"))
        self.assertIn(b'name="peerId"', sent_body)
        self.assertIn(b'filename="report.pdf"', sent_body)
        self.assertGreater(len(progress), 1)
        self.assertEqual((len(sent_body), len(sent_body)), progress[-1])
        self.assertEqual(sorted(progress), progress)

    @patch("peer_sync.api.requests.post")
    def test_send_file_error_body(self, post):
        post.return_value = response(status_code=500, text="Failed to send file: peer not found")
        with self.assertRaises(ActionError) as cm:
            self.api.send_file("peerA", self.file)
        self.assertEqual("Failed to send file: peer not found", str(cm.exception))
        self.assertEqual(500, cm.exception.status_code)

    @patch("peer_sync.api.requests.post")
    def test_send_file_rechecks_size_of_grown_file(self, post):
        with open(self.file.path, "ab") as f:
            f.write(b"0" * (10 * 1024 * 1024))
        with self.assertRaises(ActionError) as cm:
            self.api.send_file("peerA", self.file)
        self.assertEqual("File too large. Maximum size is 10MB", str(cm.exception))
        post.assert_not_called()

    @patch("peer_sync.api.requests.post")
    def test_send_file_network_error(self, post):
        post.side_effect = requests.ConnectionError("reset")
        with self.assertRaises(ActionError) as cm:
            self.api.send_file("peerA", self.file)
        self.assertEqual("Network error occurred", str(cm.exception))

    @patch("peer_sync.api.requests.get")
    def test_download_file(self, get):
        ret = response(headers={"Content-Length": "5"})
        ret.iter_content.return_value = [b"hel", b"lo"]
        get.return_value = ret

        path = self.api.download_file("../greeting.txt", self.tmp.name)
        self.assertEqual(os.path.join(self.tmp.name, "greeting.txt"), path)
        with open(path, "rb") as f:
            self.assertEqual(b"hello", f.read())
        self.assertEqual({"name": "../greeting.txt"}, get.call_args.kwargs["params"])

    @patch("peer_sync.api.requests.get")
    def test_download_missing_file(self, get):
        get.return_value = response(status_code=404, text="File not found")
        with self.assertRaises(ActionError) as cm:
            self.api.download_file("nope.txt", self.tmp.name)
        self.assertEqual("File not found", str(cm.exception))


if __name__ == '__main__':
    unittest.main()
