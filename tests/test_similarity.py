from __future__ import annotations

import unittest

from app.mappers.similarity import SUBSTRING_MATCH_SCORE, levenshtein_distance, normalize_token, similarity


class TestSimilarity(unittest.TestCase):
    def test_identical_names_score_one(self) -> None:
        self.assertEqual(similarity("email", "email"), 1.0)
        self.assertEqual(similarity("Case ID", "case_id"), 1.0)

    def test_containment_scores_substring_match(self) -> None:
        self.assertEqual(similarity("email", "email_address"), SUBSTRING_MATCH_SCORE)
        self.assertEqual(similarity("Phone Number", "phone"), SUBSTRING_MATCH_SCORE)

    def test_empty_input_scores_one(self) -> None:
        self.assertEqual(similarity("", "anything"), 1.0)
        self.assertEqual(similarity("---", "dob"), 1.0)

    def test_edit_distance_ratio(self) -> None:
        self.assertAlmostEqual(similarity("categry", "category"), 1.0 - 1 / 8)
        self.assertEqual(similarity("abc", "xyz"), 0.0)

    def test_score_is_symmetric_and_bounded(self) -> None:
        pairs = [("priority", "prio"), ("applicant", "aplicant"), ("dob", "birthday")]
        for left, right in pairs:
            score = similarity(left, right)
            self.assertEqual(score, similarity(right, left))
            self.assertGreaterEqual(score, 0.0)
            self.assertLessEqual(score, 1.0)

    def test_levenshtein_distance(self) -> None:
        self.assertEqual(levenshtein_distance("kitten", "sitting"), 3)
        self.assertEqual(levenshtein_distance("", "abc"), 3)
        self.assertEqual(levenshtein_distance("same", "same"), 0)

    def test_normalize_token_drops_punctuation(self) -> None:
        self.assertEqual(normalize_token(" E-Mail_Address "), "emailaddress")


if __name__ == "__main__":
    unittest.main()
