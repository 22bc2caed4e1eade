from __future__ import annotations

from unittest.mock import patch

from django.test import RequestFactory, TestCase

from voting.audit import anonymize_ip, audit_request, record_audit
from voting.middleware import ClientAddressMiddleware
from voting.models import AuditLog


class AnonymizeIpTests(TestCase):
    def test_ipv4_last_octet_zeroed(self) -> None:
        self.assertEqual(anonymize_ip("203.0.113.42"), "203.0.113.0")

    def test_forwarded_list_uses_first_entry(self) -> None:
        self.assertEqual(anonymize_ip("198.51.100.7, 10.0.0.1"), "198.51.100.0")

    def test_ipv6_keeps_four_hextets(self) -> None:
        self.assertEqual(anonymize_ip("2001:db8:85a3:8d3:1319:8a2e:370:7348"), "2001:db8:85a3:8d3::")
        self.assertEqual(anonymize_ip("fe80::1%eth0"), "fe80:1:0:0::")

    def test_unusable_input(self) -> None:
        for value in (None, "", "  ", "localhost", 12345):
            self.assertIsNone(anonymize_ip(value))


class RecordAuditTests(TestCase):
    def test_stores_anonymised_address(self) -> None:
        entry = record_audit("election_created", "election", "abc", {"title": "T"}, ip="192.0.2.99")
        self.assertEqual(entry.ip_address, "192.0.2.0")
        self.assertIsNone(entry.user)

    def test_failure_is_swallowed(self) -> None:
        with patch("voting.audit.AuditLog.objects.create", side_effect=RuntimeError("down")):
            with self.assertLogs("voting.audit", level="ERROR"):
                self.assertIsNone(record_audit("vote_cast", "vote", "x"))

    def test_request_address_from_middleware(self) -> None:
        request = RequestFactory().get("/api/auth/role/", HTTP_X_FORWARDED_FOR="198.51.100.23, 10.0.0.2")
        ClientAddressMiddleware(lambda r: None).process_request(request)
        request.user = None

        audit_request(request, "voters_assigned", "voting_point", "p1")

        self.assertEqual(AuditLog.objects.get().ip_address, "198.51.100.0")
