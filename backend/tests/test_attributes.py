import unittest
from datetime import datetime

from stockledger.attributes import (
    BaleAttributes,
    TireAttributes,
    attributes_to_columns,
    patch_attributes,
    resolve_attributes,
)
from stockledger.validation import InvalidTypeFieldError


class ResolveAttributesTests(unittest.TestCase):

    def test_tire_variant(self):
        attrs = resolve_attributes("TIRE", {"category": "NEW", "size": "185/70R14"})
        self.assertIsInstance(attrs, TireAttributes)
        self.assertEqual(attrs.size, "185/70R14")
        self.assertIsNone(attrs.usage)

    def test_empty_other_bag_is_allowed(self):
        attrs = resolve_attributes("TIRE", {"usage": "TRUCK"}, {"weight": None})
        self.assertEqual(attrs.usage, "TRUCK")

    def test_populated_other_bag_rejected(self):
        with self.assertRaises(InvalidTypeFieldError):
            resolve_attributes("BALE", {"size": "185/70R14"}, None)

    def test_unknown_key_rejected(self):
        with self.assertRaises(InvalidTypeFieldError):
            resolve_attributes("TIRE", {"tread_depth": 8})

    def test_bad_enum_rejected(self):
        with self.assertRaises(InvalidTypeFieldError):
            resolve_attributes("TIRE", {"category": "USED"})

    def test_variant_instance_accepted(self):
        attrs = resolve_attributes("BALE", None, BaleAttributes(weight=50, origin_country="UK"))
        self.assertEqual(attrs.weight, 50)

    def test_mismatched_variant_instance_rejected(self):
        with self.assertRaises(InvalidTypeFieldError):
            resolve_attributes("BALE", None, TireAttributes(size="185/70R14"))


class BaleAttributesTests(unittest.TestCase):

    def test_import_date_parsed(self):
        attrs = BaleAttributes(import_date="2026-03-01T10:00:00Z")
        self.assertEqual(attrs.import_date, datetime(2026, 3, 1, 10, 0, 0))
        self.assertEqual(attrs.to_dict()["import_date"], "2026-03-01T10:00:00Z")

    def test_bad_import_date(self):
        with self.assertRaises(InvalidTypeFieldError):
            BaleAttributes(import_date="last tuesday")

    def test_negative_weight(self):
        with self.assertRaises(InvalidTypeFieldError):
            BaleAttributes(weight=-1)

    def test_non_finite_weight(self):
        for weight in (float("nan"), float("inf")):
            with self.subTest(weight=weight):
                with self.assertRaises(InvalidTypeFieldError) as ctx:
                    BaleAttributes(weight=weight)
                self.assertEqual(ctx.exception.message, "bale weight must be a finite number")

    def test_columns(self):
        columns = attributes_to_columns(BaleAttributes(weight=12.5, category="Mixed"))
        self.assertEqual(columns["bale_weight"], 12.5)
        self.assertEqual(columns["bale_category"], "Mixed")
        self.assertNotIn("tire_size", columns)


class PatchAttributesTests(unittest.TestCase):

    def test_reports_changed_columns_only(self):
        current = TireAttributes(category="NEW", size="185/70R14")
        updated, changed = patch_attributes(current, {"size": "185/70R14", "usage": "REGULAR"})
        self.assertEqual(updated.usage, "REGULAR")
        self.assertEqual(changed, ["tire_usage"])

    def test_none_clears_value(self):
        current = TireAttributes(warranty_period="12 months")
        updated, changed = patch_attributes(current, {"warranty_period": None})
        self.assertIsNone(updated.warranty_period)
        self.assertEqual(changed, ["warranty_period"])

    def test_empty_patch(self):
        current = BaleAttributes(weight=10)
        updated, changed = patch_attributes(current, {})
        self.assertIs(updated, current)
        self.assertEqual(changed, [])


if __name__ == "__main__":
    unittest.main()
