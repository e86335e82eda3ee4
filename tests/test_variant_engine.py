from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from reelforge.models.bible_asset import BibleAssetStatus
from reelforge.models.project import ProjectStatus
from reelforge.models.variant import Variant, VariantStatus
from reelforge.services.lifecycle import ProjectLifecycle
from reelforge.services.results import Completion, ErrorKind
from reelforge.services.variant_engine import STUCK_VARIANT_ERROR, VariantEngine


@pytest.fixture
def engine(session, config, gateway, blob_store):
    return VariantEngine(session, config, gateway, blob_store)


async def _variants(session, parent_id):
    result = await session.execute(
        select(Variant).where(Variant.parent_id == parent_id).order_by(Variant.generation_order)
    )
    return list(result.scalars().all())


async def test_generate_fans_out_one_variant_per_model(engine, seed, gateway, session):
    project = await seed.project()
    hero = await seed.asset(project, "character", name="Mara")

    result = await engine.generate_variants("character", hero.id)

    assert result.success
    variants = await _variants(session, hero.id)
    assert [v.model for v in variants] == ["seedream", "nano-banana"]
    assert [v.generation_order for v in variants] == [0, 1]
    assert all(v.status == VariantStatus.GENERATING.value for v in variants)
    assert hero.image_status == BibleAssetStatus.GENERATING.value

    assert len(gateway.images) == 2
    payload = gateway.images[0]
    assert payload["callback_url"] == "http://api.test/api/webhooks/image-variant"
    assert payload["aspect_ratio"] == "1:1"
    assert payload["model"] == "seedream-4.5-text-to-image"
    assert payload["prompt"].startswith("tall, red coat.")
    assert payload["variant_id"] == variants[0].id


async def test_one_model_failing_does_not_fail_the_others(engine, seed, gateway, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    gateway.failing_models = {"nano-banana"}

    result = await engine.generate_variants("character", hero.id)

    assert result.success
    by_model = {v.model: v for v in await _variants(session, hero.id)}
    assert by_model["seedream"].status == VariantStatus.GENERATING.value
    assert by_model["nano-banana"].status == VariantStatus.FAILED.value
    assert by_model["nano-banana"].error_message == "model unavailable"
    assert hero.image_status == BibleAssetStatus.GENERATING.value


async def test_all_models_failing_marks_asset_failed(engine, seed, gateway):
    project = await seed.project()
    prop = await seed.asset(project, "prop")
    gateway.failing_models = {"seedream", "nano-banana"}

    await engine.generate_variants("prop", prop.id)

    assert prop.image_status == BibleAssetStatus.FAILED.value


async def test_generate_rejects_unknown_model_and_missing_parent(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")

    unknown = await engine.generate_variants("character", hero.id, ["dall-e-9"])
    missing = await engine.generate_variants("location", hero.id)

    assert unknown.kind == ErrorKind.PRECONDITION_FAILED
    assert missing.kind == ErrorKind.NOT_FOUND


async def test_scene_variants_carry_bible_references(engine, seed, gateway, session):
    project = await seed.project(visual_style="Neo-noir")
    mara = await seed.asset(
        project, "character", name="Mara",
        approved_image_url="https://cdn.test/mara.png",
        image_status=BibleAssetStatus.APPROVED.value,
    )
    alley = await seed.asset(
        project, "location", name="Alley",
        approved_image_url="https://cdn.test/alley.png",
        image_status=BibleAssetStatus.APPROVED.value,
    )
    await seed.asset(project, "character", name="Stranger")
    scene = await seed.scene(project, 1, production_data={
        "action_description": "Mara steps out of the rain",
        "characters_present": ["Mara"],
        "location": "Alley",
    })

    result = await engine.generate_variants("scene", scene.id)

    assert result.success
    variant = (await _variants(session, scene.id))[0]
    assert variant.injected_refs == {"characters": [mara.id], "locations": [alley.id], "props": []}
    payload = gateway.images[0]
    assert payload["callback_url"] == "http://api.test/api/webhooks/scene-image-variant"
    assert payload["aspect_ratio"] == "16:9"
    assert sorted(payload["reference_images"]) == ["https://cdn.test/alley.png", "https://cdn.test/mara.png"]
    assert "Featuring Mara" in payload["prompt"]
    assert "Style: Neo-noir" in payload["prompt"]


async def test_completion_rehosts_and_is_idempotent(engine, seed, blob_store):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    variant = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value)
    completion = Completion.ready("https://gen.test/out.png")

    first = await engine.apply_completion(variant.id, completion)
    second = await engine.apply_completion(variant.id, completion)

    expected = f"https://cdn.test/bible-images/characters/{hero.id}/{variant.id}.png"
    assert first.data["image_url"] == expected
    assert second.data["image_url"] == expected
    assert variant.status == VariantStatus.READY.value
    assert list(blob_store.objects) == [f"bible-images/characters/{hero.id}/{variant.id}.png"]
    assert hero.image_status == BibleAssetStatus.READY.value


async def test_completion_keeps_transient_url_when_rehost_fails(engine, seed, blob_store):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    variant = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value)
    blob_store.fail_downloads = True

    result = await engine.apply_completion(variant.id, Completion.ready("https://gen.test/out.png"))

    assert result.success
    assert variant.image_url == "https://gen.test/out.png"
    assert variant.storage_path is None


async def test_stale_failure_after_success_is_ignored(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    variant = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value)

    await engine.apply_completion(variant.id, Completion.ready("https://gen.test/out.png"))
    late = await engine.apply_completion(variant.id, Completion.failed("timeout"))

    assert late.data["ignored"] is True
    assert variant.status == VariantStatus.READY.value
    assert variant.error_message is None


async def test_redelivered_completion_keeps_approval(engine, seed, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    variant = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value)
    completion = Completion.ready("https://gen.test/out.png")

    await engine.apply_completion(variant.id, completion)
    await engine.select_variant(variant.id)
    await ProjectLifecycle(session).approve_asset(hero.id)
    approved_at = hero.approved_at

    again = await engine.apply_completion(variant.id, completion)

    assert again.success
    assert variant.status == VariantStatus.SELECTED.value
    assert hero.image_status == BibleAssetStatus.APPROVED.value
    assert hero.approved_at == approved_at
    assert hero.approved_image_url == variant.image_url


async def test_late_failure_does_not_revoke_approved_asset(engine, seed):
    project = await seed.project()
    alley = await seed.asset(
        project, "location",
        approved_image_url="https://cdn.test/alley.png",
        image_status=BibleAssetStatus.APPROVED.value,
    )

    result = await engine.apply_asset_result("location", alley.id, Completion.failed("late retry failed"))

    assert result.data["ignored"] is True
    assert alley.image_status == BibleAssetStatus.APPROVED.value
    assert alley.error_message is None


async def test_failed_extra_shot_leaves_asset_status(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")

    result = await engine.apply_asset_result(
        "character", hero.id, Completion.failed("pose rejected"), shot_type="three_quarter"
    )
    portrait = await engine.apply_asset_result("character", hero.id, Completion.failed("no face"))

    assert result.data["ignored"] is True
    assert portrait.data["image_status"] == BibleAssetStatus.FAILED.value
    assert hero.error_message == "no face"


async def test_completion_for_unknown_variant(engine):
    result = await engine.apply_completion("missing", Completion.failed("boom"))
    assert result.kind == ErrorKind.NOT_FOUND


async def test_select_keeps_exactly_one_selected(engine, seed, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    first = await seed.variant("character", hero.id, model="seedream")
    second = await seed.variant("character", hero.id, model="nano-banana", generation_order=1)

    await engine.select_variant(first.id)
    result = await engine.select_variant(second.id)

    assert result.success
    variants = await _variants(session, hero.id)
    assert [v.id for v in variants if v.is_selected] == [second.id]
    await session.refresh(first)
    assert first.status == VariantStatus.READY.value
    assert second.status == VariantStatus.SELECTED.value
    assert hero.approved_image_url == second.image_url
    assert hero.selected_model == "nano-banana"
    assert hero.image_status == BibleAssetStatus.READY.value


async def test_selection_is_scoped_by_shot_type(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    portrait = await seed.variant("character", hero.id)
    full_body = await seed.variant("character", hero.id, shot_type="full_body")

    await engine.select_variant(portrait.id)
    await engine.select_variant(full_body.id)

    assert portrait.is_selected and full_body.is_selected
    assert hero.approved_image_url == portrait.image_url
    assert hero.shot_images["full_body"]["url"] == full_body.image_url


async def test_select_refuses_unfinished_variant(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    pending = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value)

    result = await engine.select_variant(pending.id)

    assert result.kind == ErrorKind.PRECONDITION_FAILED


async def test_scene_selection_sets_approved_image(engine, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    variant = await seed.variant("scene", scene.id)

    await engine.select_variant(variant.id)
    assert scene.approved_image_id == variant.id
    assert scene.approved_image_url == variant.image_url

    await engine.unselect_variant(variant.id)
    assert scene.approved_image_id is None
    assert variant.status == VariantStatus.READY.value


async def test_selected_variant_is_protected_from_delete(engine, seed, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    chosen = await seed.variant("character", hero.id)
    await engine.select_variant(chosen.id)

    refused = await engine.delete_variant(chosen.id)
    assert refused.kind == ErrorKind.PRECONDITION_FAILED
    assert refused.error == "Cannot delete the selected variant. Select a different variant first."

    forced = await engine.force_delete_variant(chosen.id)
    assert forced.data["was_selected"] is True
    assert await session.get(Variant, chosen.id) is None
    assert hero.approved_image_url is None
    assert hero.image_status == BibleAssetStatus.PENDING.value


async def test_duplicate_selection_can_be_deleted_and_repaired(engine, seed, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    older = await seed.variant(
        "character", hero.id, status=VariantStatus.SELECTED.value, is_selected=True,
        updated_at=datetime.utcnow() - timedelta(minutes=5),
    )
    newer = await seed.variant(
        "character", hero.id, model="nano-banana", status=VariantStatus.SELECTED.value, is_selected=True,
    )
    third = await seed.variant(
        "character", hero.id, model="nano-banana", status=VariantStatus.SELECTED.value, is_selected=True,
        updated_at=datetime.utcnow() - timedelta(minutes=1),
    )

    deleted = await engine.delete_variant(third.id)
    assert deleted.success

    repaired = await engine.fix_duplicates("character", hero.id)
    assert repaired.data == {"fixed_count": 1, "kept_variant_id": newer.id}
    await session.refresh(older)
    assert older.is_selected is False
    assert older.status == VariantStatus.READY.value
    assert hero.approved_image_url == newer.image_url


async def test_reset_stuck_variants(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character", image_status=BibleAssetStatus.GENERATING.value)
    stale = await seed.variant(
        "character", hero.id, status=VariantStatus.GENERATING.value,
        created_at=datetime.utcnow() - timedelta(minutes=30),
    )
    fresh = await seed.variant("location", "elsewhere", status=VariantStatus.GENERATING.value)

    result = await engine.reset_stuck_variants()

    assert result.data["reset_count"] == 1
    assert stale.status == VariantStatus.FAILED.value
    assert stale.error_message == STUCK_VARIANT_ERROR
    assert fresh.status == VariantStatus.GENERATING.value
    assert hero.image_status == BibleAssetStatus.FAILED.value


async def test_refine_records_lineage(engine, seed, gateway):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    base = await seed.variant("character", hero.id)

    refined = await engine.refine_variant(base.id, "nano-banana", "Make the coat darker")
    assert refined.success
    assert gateway.images[-1]["reference_images"] == [base.image_url]
    assert gateway.images[-1]["prompt"] == "Make the coat darker"

    lineage = await engine.variant_lineage(refined.data["variant_id"])
    assert [v.id for v in lineage.data["variants"]] == [base.id, refined.data["variant_id"]]


async def test_retry_replaces_failed_variant(engine, seed, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    failed = await seed.variant(
        "character", hero.id, model="nano-banana-pro-text-to-image", status=VariantStatus.FAILED.value,
    )
    ready = await seed.variant("character", hero.id, generation_order=1)

    refused = await engine.retry_variant(ready.id)
    result = await engine.retry_variant(failed.id)

    assert refused.kind == ErrorKind.PRECONDITION_FAILED
    assert result.success
    assert await session.get(Variant, failed.id) is None
    replacement = await session.get(Variant, result.data["variant_id"])
    assert replacement.model == "nano-banana"
    assert replacement.generation_order == 2


async def test_delete_failed_variants(engine, seed, session):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    await seed.variant("character", hero.id, status=VariantStatus.FAILED.value)
    await seed.variant("character", hero.id, status=VariantStatus.FAILED.value)
    keeper = await seed.variant("character", hero.id)

    result = await engine.delete_failed_variants("character", hero.id)

    assert result.data["deleted_count"] == 2
    assert [v.id for v in await _variants(session, hero.id)] == [keeper.id]


async def test_direct_asset_result_writes_portrait_and_shots(engine, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")

    await engine.apply_asset_result("character", hero.id, Completion.ready("https://gen.test/p.png"))
    await engine.apply_asset_result(
        "character", hero.id, Completion.ready("https://gen.test/fb.png"), shot_type="full_body"
    )

    assert hero.approved_image_url == f"https://cdn.test/bible-images/characters/{hero.id}/portrait.png"
    assert hero.image_status == BibleAssetStatus.READY.value
    assert hero.shot_images["full_body"]["url"].endswith(f"characters/{hero.id}/full_body.png")


async def test_bulk_approve_bible_images_advances_project(engine, seed, session):
    project = await seed.project()
    assets = [
        await seed.asset(project, "character", name="Mara"),
        await seed.asset(project, "character", name="Jonah"),
        await seed.asset(project, "location", name="Alley"),
    ]
    for asset in assets:
        await seed.variant(asset.asset_type, asset.id)

    result = await engine.bulk_approve_bible_images(project.id)

    assert result.data["approved_count"] == 3
    assert result.data["status"] == ProjectStatus.SCENE_VALIDATION.value
    assert all(a.image_status == BibleAssetStatus.APPROVED.value for a in assets)


async def test_bulk_approve_scene_images_skips_scenes_with_selection(engine, seed):
    project = await seed.project()
    first = await seed.scene(project, 1)
    second = await seed.scene(project, 2)
    chosen = await seed.variant("scene", first.id, status=VariantStatus.SELECTED.value, is_selected=True)
    candidate = await seed.variant("scene", second.id)

    result = await engine.bulk_approve_scene_images(project.id)

    assert result.data["approved_count"] == 1
    assert second.approved_image_id == candidate.id
    assert chosen.is_selected
