"""Tests for text shaping, typo injection and staged delivery."""

from __future__ import annotations

import random

import pytest
from conftest import FakeGateway, FixedRandom, no_sleep

from mimic_bot.config import HumanizeConfig, TypoConfig
from mimic_bot.humanize.delivery import DeliveryError, HumanizedDelivery, reaction_marker
from mimic_bot.humanize.text import post_process, split_into_chunks, typing_duration
from mimic_bot.humanize.typos import introduce_typo


class TestPostProcess:
    def test_strips_single_trailing_period(self):
        assert post_process("Ок, давай.", FixedRandom(0.99)) == "Ок, давай"

    def test_keeps_ellipsis(self):
        assert post_process("Ну не знаю...", FixedRandom(0.99)) == "Ну не знаю..."

    def test_drops_commas_when_coin_lands(self):
        assert post_process("да, нет, может", FixedRandom(0.0), 0.25) == "да нет может"

    def test_keeps_commas_when_coin_misses(self):
        assert post_process("да, нет", FixedRandom(0.5), 0.25) == "да, нет"


class TestSplitIntoChunks:
    def test_always_flush_gives_one_chunk_per_sentence(self):
        chunks = split_into_chunks("Привет. Как дела? Все супер!", FixedRandom(0.0), 0.6)
        assert chunks == ["Привет.", "Как дела?", "Все супер!"]

    def test_never_flush_keeps_single_chunk(self):
        text = "Привет. Как дела? Все супер!"
        assert split_into_chunks(text, FixedRandom(0.99), 0.6) == [text]

    def test_no_punctuation_is_one_chunk(self):
        assert split_into_chunks("привет как ты", FixedRandom(0.0)) == ["привет как ты"]

    def test_empty_text(self):
        assert split_into_chunks("   ", FixedRandom(0.0)) == []


class TestTypingDuration:
    @pytest.mark.parametrize(
        ("length", "expected"),
        [(10, 1.0), (100, 2.0), (1000, 10.0)],
    )
    def test_clamped(self, length, expected):
        assert typing_duration("x" * length, 50, 1, 10) == expected


class TestIntroduceTypo:
    def test_probability_zero_never_mutates(self):
        result = introduce_typo("Привет, как поживаешь", 0.0, random.Random(1))
        assert not result.has_typo
        assert result.text == "Привет, как поживаешь"

    def test_short_words_are_never_touched(self):
        result = introduce_typo("да ок и", 1.0, random.Random(1))
        assert not result.has_typo

    @pytest.mark.parametrize("seed", range(25))
    def test_typo_is_single_interior_change(self, seed):
        text = "Сегодня отличная погода"
        result = introduce_typo(text, 1.0, random.Random(seed))
        if not result.has_typo:
            return
        assert result.original == text
        assert result.text != text
        assert abs(len(result.text) - len(text)) <= 1
        for typo_word, word in zip(result.text.split(), text.split()):
            assert typo_word[0] == word[0]
            assert typo_word[-1] == word[-1]


def _delivery(gateway, rng=None, **config) -> HumanizedDelivery:
    humanize = HumanizeConfig(**config)
    return HumanizedDelivery(gateway, humanize, rng=rng or FixedRandom(0.99), sleep=no_sleep)


class TestHumanizedDelivery:
    async def test_sends_chunks_with_typing(self):
        gateway = FakeGateway()
        delivery = _delivery(gateway, rng=FixedRandom(0.0), comma_drop_probability=0.0,
                             typo=TypoConfig(probability=0.0))

        report = await delivery.deliver(7, "Привет. Как дела? Все супер!")

        assert gateway.texts_to(7) == ["Привет.", "Как дела?", "Все супер!"]
        assert gateway.typing == [7, 7, 7]
        assert report.complete
        assert report.text == "Привет.\nКак дела?\nВсе супер!"

    async def test_typo_is_edited_back_to_exact_original(self):
        gateway = FakeGateway()
        rng = random.Random(3)
        delivery = HumanizedDelivery(
            gateway,
            HumanizeConfig(comma_drop_probability=0.0, split_probability=0.0,
                           typo=TypoConfig(probability=1.0)),
            rng=rng,
            sleep=no_sleep,
        )

        report = await delivery.deliver(7, "Сегодня отличная погода")

        assert report.sent_chunks == ["Сегодня отличная погода"]
        if gateway.edits:
            (party, _, edited), = gateway.edits
            assert party == 7
            assert edited == "Сегодня отличная погода"
            assert gateway.sent[0][1] != edited
        else:
            assert gateway.sent == [(7, "Сегодня отличная погода")]

    async def test_failed_send_stops_remaining_chunks(self):
        gateway = FakeGateway()
        gateway.fail_send_after = 1
        delivery = _delivery(gateway, rng=FixedRandom(0.0), comma_drop_probability=0.0,
                             typo=TypoConfig(probability=0.0))

        report = await delivery.deliver(7, "Раз. Два. Три!")

        assert report.sent_chunks == ["Раз."]
        assert not report.complete

    async def test_typing_failure_is_cosmetic(self):
        gateway = FakeGateway()
        gateway.fail_typing = True
        delivery = _delivery(gateway, typo=TypoConfig(probability=0.0))

        report = await delivery.deliver(7, "Привет")
        assert report.sent_chunks == ["Привет"]

    async def test_ack_uses_reaction(self):
        gateway = FakeGateway()
        delivery = _delivery(gateway)

        recorded = await delivery.deliver_ack(7, 55, "👍")

        assert gateway.reactions == [(7, 55, "👍")]
        assert gateway.sent == []
        assert recorded == reaction_marker("👍")

    async def test_ack_falls_back_to_text(self):
        gateway = FakeGateway()
        gateway.fail_reaction = True
        delivery = _delivery(gateway, typo=TypoConfig(probability=0.0))

        recorded = await delivery.deliver_ack(7, 55, "👍")

        assert gateway.sent == [(7, "👍")]
        assert recorded == "👍"

    async def test_ack_raises_when_nothing_delivered(self):
        gateway = FakeGateway()
        gateway.fail_reaction = True
        gateway.fail_send_after = 0
        delivery = _delivery(gateway, typo=TypoConfig(probability=0.0))

        with pytest.raises(DeliveryError):
            await delivery.deliver_ack(7, 55, "👍")
