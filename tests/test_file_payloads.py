import base64
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.integrations.coze import InvalidInput
from app.services.file_payloads import (
    decode_base64_payload,
    detect_mime_from_data_url,
    normalize_base64,
    resolve_mime,
    sniff_mime,
)

PDF_BYTES = b"%PDF-1.7\n%fake"
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


class FilePayloadTests(unittest.TestCase):
    def test_data_url_prefix_is_stripped(self):
        encoded = base64.b64encode(PDF_BYTES).decode()
        data_url = f"data:application/pdf;base64,{encoded}"
        self.assertEqual(normalize_base64(data_url), encoded)
        self.assertEqual(detect_mime_from_data_url(data_url), "application/pdf")
        self.assertEqual(decode_base64_payload(data_url, field_label="resumeBase64"), PDF_BYTES)

    def test_bare_base64_is_accepted(self):
        encoded = base64.b64encode(PNG_BYTES).decode()
        self.assertIsNone(detect_mime_from_data_url(encoded))
        self.assertEqual(decode_base64_payload(encoded, field_label="jdBase64"), PNG_BYTES)

    def test_missing_padding_and_whitespace_are_tolerated(self):
        encoded = base64.b64encode(b"abcd1").decode().rstrip("=")
        wrapped = encoded[:4] + "\n" + encoded[4:]
        self.assertEqual(decode_base64_payload(wrapped, field_label="jdBase64"), b"abcd1")

    def test_invalid_or_empty_payloads_raise(self):
        with self.assertRaises(InvalidInput):
            decode_base64_payload("", field_label="resumeBase64")
        with self.assertRaises(InvalidInput):
            decode_base64_payload("data:application/pdf;base64,", field_label="resumeBase64")
        with self.assertRaises(InvalidInput) as ctx:
            decode_base64_payload("not base64 at all!!", field_label="resumeBase64")
        self.assertIn("resumeBase64", str(ctx.exception))

    def test_sniff_mime(self):
        self.assertEqual(sniff_mime(PDF_BYTES), "application/pdf")
        self.assertEqual(sniff_mime(PNG_BYTES), "image/png")
        self.assertEqual(sniff_mime(b"\xff\xd8\xff\xe0rest"), "image/jpeg")
        self.assertEqual(sniff_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 "), "image/webp")
        self.assertIsNone(sniff_mime(b"plain text"))

    def test_resolve_mime_precedence(self):
        data_url = "data:image/png;base64,AAAA"
        self.assertEqual(resolve_mime("Image/JPEG", data_url=data_url, content=PDF_BYTES, default="x/y"), "image/jpeg")
        self.assertEqual(resolve_mime(None, data_url=data_url, content=PDF_BYTES, default="x/y"), "image/png")
        self.assertEqual(resolve_mime(None, content=PNG_BYTES, default="image/jpeg"), "image/png")
        self.assertEqual(resolve_mime("", content=b"???", default="image/jpeg"), "image/jpeg")


if __name__ == "__main__":
    unittest.main()
