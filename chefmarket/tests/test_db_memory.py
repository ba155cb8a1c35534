import unittest

from chefmarket.db import InMemoryDbClient
from chefmarket.tests.db_contract import DbClientContract


class InMemoryDbClientTests(DbClientContract, unittest.TestCase):
    def make_db(self):
        return InMemoryDbClient()

    def test_reset_clears_everything(self):
        self._user("alice")
        self.db.reset()
        self.assertEqual(self.db.list_users(), [])
        # ids restart after a reset
        self.assertEqual(self._user("bob").id, 1)


if __name__ == "__main__":
    unittest.main()
