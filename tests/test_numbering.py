import uuid
from collections import defaultdict

from django.test import SimpleTestCase, TestCase

from billing_ledger.adapters.numbering.django_counter_service import DjangoCounterService
from billing_ledger.core.domain.services.counter_service import DocumentNumberGenerator
from plugins.django_interface.models import NumberSequence


class InMemoryCounter:
    def __init__(self) -> None:
        self.values: dict[str, int] = defaultdict(int)

    def next(self, scope: str) -> int:
        self.values[scope] += 1
        return self.values[scope]


class DocumentNumberGeneratorTests(SimpleTestCase):
    def test_format_and_scope(self) -> None:
        counter = InMemoryCounter()
        generator = DocumentNumberGenerator(counter)
        clinic = uuid.uuid4()

        self.assertEqual(generator.next_number(clinic, "INV", 2025), "INV-2025-00001")
        self.assertEqual(generator.next_number(clinic, "INV", 2025), "INV-2025-00002")
        self.assertEqual(generator.next_number(clinic, "PAY", 2025), "PAY-2025-00001")
        # virada de ano reinicia a sequência
        self.assertEqual(generator.next_number(clinic, "INV", 2026), "INV-2026-00001")
        self.assertIn(f"{clinic}:INV:2025", counter.values)

    def test_clinics_do_not_share_sequences(self) -> None:
        generator = DocumentNumberGenerator(InMemoryCounter())
        first, second = uuid.uuid4(), uuid.uuid4()

        self.assertEqual(generator.next_number(first, "REF", 2025), "REF-2025-00001")
        self.assertEqual(generator.next_number(second, "REF", 2025), "REF-2025-00001")


class DjangoCounterServiceTests(TestCase):
    def test_increments_per_scope(self) -> None:
        counter = DjangoCounterService()

        self.assertEqual([counter.next("a:INV:2025") for _ in range(3)], [1, 2, 3])
        self.assertEqual(counter.next("b:INV:2025"), 1)
        self.assertEqual(NumberSequence.objects.get(scope="a:INV:2025").last_value, 3)
        self.assertEqual(NumberSequence.objects.count(), 2)
