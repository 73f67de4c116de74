from __future__ import annotations

import unittest

from core.errors import InvalidArgument
from tgbot.commands import Command, parse_amount, parse_command, parse_positive_id


class CommandParserTest(unittest.TestCase):
    def test_free_text_is_not_a_command(self) -> None:
        self.assertIsNone(parse_command("Birthday Fund"))
        self.assertIsNone(parse_command(""))
        self.assertIsNone(parse_command(None))

    def test_known_commands(self) -> None:
        for command in Command:
            parsed = parse_command(command.value)
            assert parsed is not None
            self.assertEqual(parsed.command, command)
            self.assertEqual(parsed.args, [])

    def test_bot_suffix_and_case(self) -> None:
        parsed = parse_command("/Paid@fund_bot 3 100 for the cake")
        assert parsed is not None
        self.assertEqual(parsed.command, Command.PAID)
        self.assertEqual(parsed.split_args(3), ["3", "100", "for the cake"])

    def test_unknown_command(self) -> None:
        parsed = parse_command("/launch now")
        assert parsed is not None
        self.assertIsNone(parsed.command)
        self.assertEqual(parsed.token, "/launch")

    def test_newline_separates_arguments(self) -> None:
        parsed = parse_command("/reject\n5 wrong amount")
        assert parsed is not None
        self.assertEqual(parsed.command, Command.REJECT)
        self.assertEqual(parsed.split_args(2), ["5", "wrong amount"])

    def test_parse_positive_id(self) -> None:
        self.assertEqual(parse_positive_id("12", "usage"), 12)
        self.assertEqual(parse_positive_id("#12", "usage"), 12)
        for value in ("abc", "0", "-3", "", None, "\u00b2", "99999999999999999999"):
            with self.assertRaises(InvalidArgument):
                parse_positive_id(value, "usage")

    def test_parse_amount_accepts_negative_for_service_validation(self) -> None:
        self.assertEqual(parse_amount("100", "usage"), 100)
        self.assertEqual(parse_amount("-5", "usage"), -5)
        with self.assertRaises(InvalidArgument):
            parse_amount("ten", "usage")
        with self.assertRaises(InvalidArgument):
            parse_amount("99999999999999999999", "usage")


if __name__ == "__main__":
    unittest.main()
