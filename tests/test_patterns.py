"""
Signature matcher tests.
"""
import pytest

from security.patterns import (
    classify,
    file_extensions,
    final_extension,
    matches_dangerous_file_extension,
    matches_injection_signature,
    matches_path_traversal,
    matches_suspicious_request,
    matches_xss,
    redact_sensitive,
    safe_field_label,
    scan_payload,
)


class TestInjection:
    @pytest.mark.parametrize("text", [
        "1' OR '1'='1",
        "name; DROP TABLE users",
        "x UNION SELECT password FROM users",
        "admin'--",
        "javascript:alert(1)",
        "<img src=x onerror=alert(1)>",
    ])
    def test_detects_known_signatures(self, text):
        assert matches_injection_signature(text)

    @pytest.mark.parametrize("text", [
        "Prepare the quarterly report",
        "Reselection of vendors",
        "Call the office at 10:30",
        "",
    ])
    def test_plain_text_passes(self, text):
        assert not matches_injection_signature(text)

    def test_non_string_is_not_a_match(self):
        assert not matches_injection_signature(None)
        assert not matches_xss(42)
        assert not matches_path_traversal(None)


class TestXss:
    @pytest.mark.parametrize("text", [
        "<script>alert(1)</script>",
        "< SCRIPT src=//evil>",
        "javascript:alert(document.cookie)",
        "data:text/html;base64,PHNjcmlwdD4=",
        "width: expression(alert(1))",
        "@import url(evil.css)",
        "${7*7}",
        "<?php echo 1; ?>",
    ])
    def test_detects_markup_attacks(self, text):
        assert matches_xss(text)

    def test_harmless_markup_is_not_xss(self):
        assert not matches_xss("<b>bold</b> statement")


class TestPathTraversal:
    @pytest.mark.parametrize("text", [
        "../../etc/passwd",
        "..\\windows\\system32",
        "reports/..",
        "..",
        "%2e%2e%2fetc%2fpasswd",
        "%252e%252e%252f",
    ])
    def test_detects_traversal(self, text):
        assert matches_path_traversal(text)

    @pytest.mark.parametrize("text", ["reports/2024", "file..name.txt", "v1.2.3"])
    def test_dotted_names_are_fine(self, text):
        assert not matches_path_traversal(text)


class TestExtensions:
    def test_every_segment_is_listed(self):
        assert file_extensions("payload.php.jpg") == [".php", ".jpg"]
        assert final_extension("Report.PDF") == ".pdf"
        assert final_extension("README") == ""

    def test_trailing_dots_are_ignored(self):
        assert file_extensions("setup.exe. ") == [".exe"]

    @pytest.mark.parametrize("name", ["a.exe", "SETUP.EXE", "payload.php.jpg", "run.bat", "app.js", "tool.jar"])
    def test_dangerous_names(self, name):
        assert matches_dangerous_file_extension(name)

    @pytest.mark.parametrize("name", ["photo.jpg", "notes.txt", "archive.tar.gz", "json.data.csv"])
    def test_safe_names(self, name):
        assert not matches_dangerous_file_extension(name)


def test_suspicious_request_line():
    assert matches_suspicious_request("/api/tasks?q=1 union all select 2")
    assert matches_suspicious_request("/uploads/%2e%2e%2fsecret")
    assert not matches_suspicious_request("/api/tasks?page=2")


def test_classify_reports_first_class():
    assert classify("x' OR 1=1") == "injection"
    assert classify("<script>") == "xss"
    assert classify("../secret") == "path_traversal"
    assert classify("weekly sync") is None


class TestScanPayload:
    def test_reports_nested_field_path(self):
        payload = {"tasks": [{"title": "ok"}, {"title": "<script>alert(1)</script>"}]}
        found = scan_payload(payload, "body")
        assert found.field == "body.tasks[1].title"
        assert found.kind == "xss"

    def test_clean_payload(self):
        assert scan_payload({"title": "Weekly sync", "count": 3, "tags": ["ops"]}) is None

    def test_sensitive_fields_are_skipped(self):
        assert scan_payload({"password": "it's ; complicated --"}) is None

    def test_non_string_leaves_are_ignored(self):
        assert scan_payload({"flag": True, "n": None, "x": 1.5}) is None


def test_safe_field_label_hides_attacker_keys():
    assert safe_field_label("body.tasks[0].title") == "body.tasks[0].title"
    assert safe_field_label("body.<script>") == "unknown"
    assert safe_field_label("") == "unknown"


def test_redact_sensitive_masks_passwords():
    redacted = redact_sensitive({"email": "a@b.c", "password": "secret", "nested": [{"new_password": "x"}]})
    assert redacted == {"email": "a@b.c", "password": "***", "nested": [{"new_password": "***"}]}
