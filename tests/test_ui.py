import unittest
from unittest.mock import MagicMock

import flet as ft

from skoolreports.services.results_service import ResultsService
from skoolreports.services.storage import Storage
from skoolreports.ui.app import SkoolReportsApp


class SubmitPupilTests(unittest.TestCase):
    def setUp(self):
        self.store = Storage(":memory:")
        self.page = MagicMock()
        self.app = SkoolReportsApp(self.page, ResultsService(self.store))
        self.error = ft.Text()
        self.refresh = MagicMock()

    def tearDown(self):
        self.store.close()

    def test_error_is_cleared_by_a_successful_add(self):
        self.app.submit_pupil("   ", "P.4", {}, self.error, self.refresh)
        self.assertEqual(self.error.value, "Pupil name is required.")
        self.refresh.assert_not_called()

        self.app.submit_pupil("Okot", "P.4", {"MTC": (71, "")}, self.error, self.refresh)
        self.assertEqual(self.error.value, "")
        self.refresh.assert_called_once()
        added = self.store.list_by_class("P.4")
        self.assertEqual([p.name for p in added], ["Okot"])
        self.assertEqual(added[0].marks["MTC"].marks, 71)

    def test_class_is_required(self):
        self.app.submit_pupil("Okot", None, {}, self.error, self.refresh)
        self.assertEqual(self.error.value, "Please select a class.")
        self.assertEqual(self.store.list_pupils(), [])


if __name__ == "__main__":
    unittest.main()
