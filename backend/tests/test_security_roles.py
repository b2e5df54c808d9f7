import unittest


from smartlink.core.security import _decide_role


class TestRoleResolution(unittest.TestCase):
    def test_db_admin_wins(self):
        role, reason = _decide_role(id_is_admin=False, claim_is_admin=False, db_role="admin")
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "db_user")

    def test_admin_user_ids(self):
        role, reason = _decide_role(id_is_admin=True, claim_is_admin=False, db_role="user")
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "admin_user_ids")

    def test_jwt_claim(self):
        role, reason = _decide_role(id_is_admin=False, claim_is_admin=True, db_role="user")
        self.assertEqual(role, "admin")
        self.assertEqual(reason, "jwt_claim")

    def test_db_role_non_admin(self):
        role, reason = _decide_role(id_is_admin=False, claim_is_admin=False, db_role="Publisher")
        self.assertEqual(role, "publisher")
        self.assertEqual(reason, "db_user")

    def test_default_user(self):
        role, reason = _decide_role(id_is_admin=False, claim_is_admin=False, db_role=None)
        self.assertEqual(role, "user")
        self.assertEqual(reason, "default")


if __name__ == "__main__":
    unittest.main()
