from __future__ import annotations

import asyncio
import random

import pytest

from garden.schemas.participant import FlowerPayload, ProgressUpdate
from garden.services.container import PortalServices
from garden.services.errors import MissingIdentifier, NotFound, ValidationError

from tests.factories import AHMED


def test_event_day_scenario(run_services) -> None:
    async def scenario(services: PortalServices):
        progress = services.progress
        registered = await progress.register(*AHMED)
        user_id = registered.participant.id

        first = await progress.update_progress(
            ProgressUpdate(user_id=user_id, level=1, flower=FlowerPayload(seed_name="X"))
        )
        duplicate = await progress.update_progress(ProgressUpdate(user_id=user_id, level=1))
        final = await progress.update_progress(
            ProgressUpdate(user_id=user_id, level=3, commitment_percentage=72)
        )
        stored = await progress.get_participant(user_id=user_id)
        return registered, first, duplicate, final, stored

    registered, first, duplicate, final, stored = run_services(scenario)

    assert registered.created is True
    assert registered.message == "User registered successfully"
    assert first.final_level == 1
    assert duplicate.final_level == 1
    assert duplicate.changed is False
    assert final.final_level == 3
    assert stored.progress_level == 3
    assert stored.commitment_percentage == 72
    assert stored.flower_seed_name == "X"


def test_unknown_phone_is_not_found(run_services) -> None:
    async def scenario(services: PortalServices):
        await services.progress.update_progress(ProgressUpdate(phone="0599999999", level=1))

    with pytest.raises(NotFound):
        run_services(scenario)


def test_update_without_identifier(run_services) -> None:
    async def scenario(services: PortalServices):
        await services.progress.update_progress(ProgressUpdate(level=1))

    with pytest.raises(MissingIdentifier):
        run_services(scenario)


def test_two_part_name_is_rejected(run_services) -> None:
    async def scenario(services: PortalServices):
        await services.progress.register("Ahmed Saud", "0501234567", "E100")

    with pytest.raises(ValidationError):
        run_services(scenario)


def test_registration_upsert_keeps_id(run_services) -> None:
    async def scenario(services: PortalServices):
        first = await services.progress.register(*AHMED)
        second = await services.progress.register(AHMED[0], "050 123 4567", "E200")
        everyone = await services.progress.list_participants()
        return first, second, everyone

    first, second, everyone = run_services(scenario)

    assert second.created is False
    assert second.message == "User updated"
    assert second.participant.id == first.participant.id
    assert second.participant.employee_id == "E200"
    assert len(everyone) == 1


def test_concurrent_double_registration_creates_one_record(run_services) -> None:
    async def scenario(services: PortalServices):
        outcomes = await asyncio.gather(*(services.progress.register(*AHMED) for _ in range(5)))
        everyone = await services.progress.list_participants()
        return outcomes, everyone

    outcomes, everyone = run_services(scenario)

    assert len(everyone) == 1
    assert {outcome.participant.id for outcome in outcomes} == {everyone[0].id}
    assert sum(outcome.created for outcome in outcomes) == 1


@pytest.mark.parametrize("order", [(2, 3), (3, 2)])
def test_concurrent_levels_never_regress(run_services, order: tuple[int, int]) -> None:
    async def scenario(services: PortalServices):
        registered = await services.progress.register(*AHMED)
        user_id = registered.participant.id
        await asyncio.gather(
            *(
                services.progress.update_progress(ProgressUpdate(user_id=user_id, level=level))
                for level in order
            )
        )
        return await services.progress.get_participant(user_id=user_id)

    stored = run_services(scenario)
    assert stored.progress_level == 3


def test_many_interleaved_updates_end_at_max(run_services) -> None:
    levels = [1, 3, 2, 1, 2, 3, 1] * 3
    random.Random(7).shuffle(levels)

    async def scenario(services: PortalServices):
        registered = await services.progress.register(*AHMED)
        phone = registered.participant.phone
        await asyncio.gather(
            *(
                services.progress.update_progress(ProgressUpdate(phone=phone, level=level))
                for level in levels
            )
        )
        return await services.progress.get_participant(phone=phone)

    assert run_services(scenario).progress_level == 3


def test_cancelled_update_is_all_or_nothing(run_services) -> None:
    async def scenario(services: PortalServices):
        registered = await services.progress.register(*AHMED)
        user_id = registered.participant.id
        task = asyncio.create_task(
            services.progress.update_progress(
                ProgressUpdate(user_id=user_id, level=2, flower=FlowerPayload(seed_name="Rose"))
            )
        )
        await asyncio.sleep(0)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return await services.progress.get_participant(user_id=user_id)

    stored = run_services(scenario)
    assert (stored.progress_level, stored.flower_seed_name) in {(0, None), (2, "Rose")}


def test_giveaway_eligibility_and_draw(run_services) -> None:
    async def scenario(services: PortalServices):
        progress = services.progress
        a = (await progress.register("Sara Noor Hassan", "0501", "E1")).participant
        b = (await progress.register("Omar Ali Hassan", "0502", "E2")).participant
        c = (await progress.register("Lina Adel Saleh", "0503", "E3")).participant
        for level in (1, 2, 3, 3):
            await progress.update_progress(ProgressUpdate(user_id=a.id, level=level))
        await progress.update_progress(ProgressUpdate(user_id=b.id, level=2))
        await progress.update_progress(ProgressUpdate(user_id=c.id, level=3))
        await progress.update_progress(ProgressUpdate(user_id=c.id, level=1))

        eligible = await progress.list_participants(progress_level=3)
        winner, count = await progress.draw_winner(random.Random(1))
        return {p.id for p in eligible}, {a.id, c.id}, winner, count

    eligible, expected, winner, count = run_services(scenario)
    assert eligible == expected
    assert winner.id in expected
    assert count == 2


def test_draw_without_eligible_participants(run_services) -> None:
    async def scenario(services: PortalServices):
        await services.progress.register(*AHMED)
        await services.progress.draw_winner()

    with pytest.raises(NotFound):
        run_services(scenario)


def test_fanout_failure_does_not_fail_the_write(run_services, monkeypatch) -> None:
    async def scenario(services: PortalServices):
        def broken_publish(participant):
            raise RuntimeError("feed down")

        monkeypatch.setattr(services.feed, "publish", broken_publish)
        registered = await services.progress.register(*AHMED)
        outcome = await services.progress.update_progress(
            ProgressUpdate(user_id=registered.participant.id, level=1)
        )
        return outcome

    outcome = run_services(scenario)
    assert outcome.final_level == 1
    assert outcome.changed is True


def test_changed_update_is_pushed_and_noop_is_not(run_services) -> None:
    async def scenario(services: PortalServices):
        published = []
        original = services.feed.publish

        def recording_publish(participant):
            published.append(participant)
            return original(participant)

        services.feed.publish = recording_publish
        registered = await services.progress.register(*AHMED)
        update = ProgressUpdate(
            user_id=registered.participant.id, level=1, flower=FlowerPayload(seed_name="Rose")
        )
        await services.progress.update_progress(update)
        await services.progress.update_progress(update)
        return published

    published = run_services(scenario)
    assert len(published) == 1
    assert published[0].flower.seed_name == "Rose"


def test_backup_written_after_update(run_services, settings) -> None:
    async def scenario(services: PortalServices):
        registered = await services.progress.register(*AHMED)
        await services.progress.update_progress(
            ProgressUpdate(user_id=registered.participant.id, level=1)
        )
        await services.backup.wait_idle()
        return services.backup.target

    target = run_services(scenario)
    assert target.exists()
    assert str(target) == settings.backup_path
