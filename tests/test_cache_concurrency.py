import unittest
import tempfile
import os
import threading

from models import Identity
from storage.cache import MemberCache


class TestCacheConcurrency(unittest.TestCase):
    def test_concurrent_put_get_no_corruption(self):
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        path = tmp.name
        tmp.close()
        cache = MemberCache(path)
        try:
            num_threads = 8
            logins_per_thread = 50
            errors = []

            def worker(thread_idx):
                try:
                    for i in range(logins_per_thread):
                        login = f"t{thread_idx}_u{i}"
                        cache.put_member(Identity(login, emails=[f"{login}@example.com"]))
                        got = cache.get_member(login)
                        if got is None or got.emails != [f"{login}@example.com"]:
                            errors.append((thread_idx, i))
                except Exception as ex:
                    errors.append(('exc', thread_idx, str(ex)))

            threads = [threading.Thread(target=worker, args=(ti,)) for ti in range(num_threads)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            self.assertEqual(len(errors), 0, f"Errors occurred in threads: {errors}")
            self.assertEqual(cache.stats()['members'], num_threads * logins_per_thread)
        finally:
            cache.close()
            try:
                os.remove(path)
            except OSError:
                pass


if __name__ == '__main__':
    unittest.main()
