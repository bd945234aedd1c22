from __future__ import annotations

import unittest


class TestPublicApiLockContract(unittest.TestCase):
    def test_api_module_exports_are_present(self) -> None:
        import gantry.api as api

        self.assertTrue(hasattr(api, "__all__"))
        self.assertIsInstance(api.__all__, (list, tuple))
        self.assertEqual(len(api.__all__), len(api._PUBLIC_EXPORTS), "every listed export must resolve")

        for name in api.__all__:
            self.assertIsInstance(name, str)
            self.assertTrue(hasattr(api, name), f"gantry.api missing public name: {name}")
            self.assertIsNotNone(getattr(api, name), f"gantry.api {name} is None")

    def test_core_operations_are_exported(self) -> None:
        import gantry.api as api

        for name in (
            "compute_timeline",
            "compute_weights",
            "compute_progress_series",
            "DragMachine",
            "compute_reorder_target",
            "commit_reorder",
            "move_to_scope",
            "project_kpis",
            "actual_data_date",
        ):
            self.assertIn(name, api.__all__)
        for method in ("begin_drag", "update_drag", "commit_drag"):
            self.assertTrue(callable(getattr(api.DragMachine, method)))

    def test_package_reexports_match_api_all(self) -> None:
        import gantry
        import gantry.api as api

        for name in api.__all__:
            self.assertTrue(hasattr(gantry, name), f"gantry package does not re-export: {name}")
            self.assertIs(getattr(gantry, name), getattr(api, name), f"gantry.{name} must be same object as gantry.api.{name}")


if __name__ == "__main__":
    unittest.main(verbosity=2)
