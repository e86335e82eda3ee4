from sqlalchemy import select

from reelforge.models.bible_asset import BibleAsset, BibleAssetStatus
from reelforge.models.project import Project, ProjectStatus
from reelforge.models.variant import Variant, VariantStatus
from reelforge.models.video import SceneShot, SceneVideo, VideoStatus

PARSED_BIBLE = {
    "characters": [{"name": "Mara", "visual_dna": ["red coat"], "portrait_prompt": "Close portrait"}],
    "locations": [{"name": "Alley", "visual_description": "Wet alley"}],
    "props": [],
}


async def _load(session_factory, model, record_id):
    async with session_factory() as s:
        return await s.get(model, record_id)


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_project_crud(client):
    created = await client.post("/api/projects/", json={"title": "Night Shift", "visual_style": "Noir"})
    assert created.status_code == 201
    project = created.json()
    assert project["status"] == ProjectStatus.PARSING.value

    listed = await client.get("/api/projects/")
    assert [p["id"] for p in listed.json()] == [project["id"]]

    fetched = await client.get(f"/api/projects/{project['id']}")
    assert fetched.json()["title"] == "Night Shift"

    deleted = await client.delete(f"/api/projects/{project['id']}")
    assert deleted.json() == {"success": True, "project_id": project["id"]}
    assert (await client.get(f"/api/projects/{project['id']}")).status_code == 404


async def test_bible_parsed_callback_accepts_camel_case(client, session_factory):
    project = (await client.post("/api/projects/", json={"title": "Night Shift"})).json()

    response = await client.post("/api/webhooks/bible-parsed", json={
        "projectId": project["id"],
        "status": "completed",
        "bible": PARSED_BIBLE,
        "scenes": [{"scene_number": 1, "slugline": "EXT. ALLEY - NIGHT"}],
    })

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == ProjectStatus.BIBLE_REVIEW.value
    assert body["bible_assets"] == 2
    assert "task_id" not in body
    assert client.scheduled == []

    assets = (await client.get(f"/api/projects/{project['id']}/bible/")).json()
    assert sorted(a["name"] for a in assets) == ["Alley", "Mara"]


async def test_bible_parsed_schedules_auto_mode(client, session_factory):
    project = (await client.post("/api/projects/", json={"title": "Auto", "auto_mode": True})).json()

    response = await client.post("/api/webhooks/bible-parsed", json={
        "project_id": project["id"], "bible": PARSED_BIBLE, "scenes": [],
    })

    assert response.json()["task_id"] == "task-1"
    assert client.scheduled == [("bible", project["id"])]
    stored = await _load(session_factory, Project, project["id"])
    assert stored.generation_task_id == "task-1"


async def test_bible_parsed_failure(client, session_factory):
    project = (await client.post("/api/projects/", json={"title": "Broken"})).json()

    response = await client.post("/api/webhooks/bible-parsed", json={
        "projectId": project["id"], "status": "error", "errorMessage": "Unreadable PDF",
    })

    assert response.json()["status"] == ProjectStatus.FAILED.value
    stored = await _load(session_factory, Project, project["id"])
    assert stored.error_message == "Unreadable PDF"
    assert (await client.get("/api/projects/")).json() == []


async def test_image_variant_callback_both_casings(client, seed, session_factory):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    camel = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value)
    snake = await seed.variant("character", hero.id, status=VariantStatus.GENERATING.value, generation_order=1)

    ok = await client.post("/api/webhooks/image-variant", json={
        "variantId": camel.id, "status": "completed", "imageUrl": "https://gen.test/a.png",
    })
    failed = await client.post("/api/webhooks/image-variant", json={
        "variant_id": snake.id, "status": "failed", "error_message": "content policy",
    })

    assert ok.json()["status"] == VariantStatus.READY.value
    assert failed.json()["status"] == VariantStatus.FAILED.value
    stored = await _load(session_factory, Variant, snake.id)
    assert stored.error_message == "content policy"
    asset = await _load(session_factory, BibleAsset, hero.id)
    assert asset.image_status == BibleAssetStatus.READY.value


async def test_image_callback_validation(client, seed):
    missing_id = await client.post("/api/webhooks/image-variant", json={"imageUrl": "https://gen.test/a.png"})
    unknown = await client.post("/api/webhooks/image-variant", json={
        "variantId": "nope", "imageUrl": "https://gen.test/a.png",
    })
    project = await seed.project()
    hero = await seed.asset(project, "character")
    no_url = await client.post("/api/webhooks/image-variant", json={"variantId": hero.id})
    bad_shot = await client.post("/api/webhooks/character-image", json={
        "characterId": hero.id, "shotType": "close_up", "imageUrl": "https://gen.test/a.png",
    })

    assert missing_id.status_code == 400
    assert unknown.status_code == 404
    assert no_url.status_code == 400
    assert bad_shot.status_code == 400


async def test_scene_image_variant_callback(client, seed, session_factory):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    variant = await seed.variant("scene", scene.id, status=VariantStatus.GENERATING.value)

    response = await client.post("/api/webhooks/scene-image-variant", json={
        "sceneImageVariantId": variant.id, "imageUrl": "https://gen.test/s.png",
    })

    assert response.status_code == 200
    stored = await _load(session_factory, Variant, variant.id)
    assert stored.image_url == f"https://cdn.test/bible-images/scenes/{scene.id}/{variant.id}.png"


async def test_direct_character_image_callback(client, seed, session_factory):
    project = await seed.project()
    hero = await seed.asset(project, "character")

    response = await client.post("/api/webhooks/character-image", json={
        "characterId": hero.id, "shotType": "portrait", "imageUrl": "https://gen.test/p.png",
    })

    assert response.status_code == 200
    asset = await _load(session_factory, BibleAsset, hero.id)
    assert asset.approved_image_url.endswith(f"characters/{hero.id}/portrait.png")


async def test_video_callback_sweeps_waiting_scene(client, seed, gateway, session_factory):
    project = await seed.project(status=ProjectStatus.ASSET_GENERATION.value)
    scenes = []
    for number in (1, 2, 3):
        scene = await seed.scene(project, number)
        variant = await seed.variant("scene", scene.id, status=VariantStatus.SELECTED.value, is_selected=True)
        scene.approved_image_id = variant.id
        scene.approved_image_url = variant.image_url
        scenes.append(scene)
    await seed.session.commit()
    running = [await seed.video(scenes[0]), await seed.video(scenes[1])]

    response = await client.post("/api/webhooks/video", json={
        "sceneVideoId": running[0].id, "status": "completed", "videoUrl": "https://gen.test/v.mp4",
    })

    body = response.json()
    assert body["status"] == VideoStatus.READY.value
    assert body["triggered"] == 1
    assert gateway.videos[0]["image_url"] == scenes[2].approved_image_url
    async with session_factory() as s:
        waiting = await s.scalar(select(SceneVideo).where(SceneVideo.scene_id == scenes[2].id))
    assert waiting.status == VideoStatus.GENERATING.value


async def test_shot_video_callback(client, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    shot = await seed.shot(scene, 1, video_status=VideoStatus.GENERATING.value)

    response = await client.post("/api/webhooks/shot-video", json={
        "shotId": shot.id, "videoUrl": "https://gen.test/s.mp4", "durationSeconds": 5,
    })

    assert response.json()["status"] == VideoStatus.READY.value
    assert response.json()["triggered"] == 0


async def test_variant_selection_endpoints(client, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character")
    first = await seed.variant("character", hero.id)
    second = await seed.variant("character", hero.id, model="nano-banana", generation_order=1)

    assert (await client.post(f"/api/variants/{first.id}/select")).status_code == 200
    assert (await client.delete(f"/api/variants/{first.id}")).status_code == 409
    assert (await client.post(f"/api/variants/{second.id}/select")).status_code == 200
    assert (await client.delete(f"/api/variants/{first.id}")).status_code == 200

    listed = (await client.get(f"/api/variants/parents/character/{hero.id}")).json()
    assert [(v["id"], v["is_selected"]) for v in listed] == [(second.id, True)]
    assert (await client.post("/api/variants/missing/select")).status_code == 404


async def test_generate_variants_endpoint(client, seed, gateway):
    project = await seed.project()
    hero = await seed.asset(project, "character")

    response = await client.post(
        f"/api/projects/{project.id}/bible/{hero.id}/variants", json={"models": ["seedream"]}
    )
    unknown = await client.post(
        f"/api/projects/{project.id}/bible/{hero.id}/variants", json={"models": ["dall-e-9"]}
    )

    assert response.status_code == 202
    assert len(response.json()["variant_ids"]) == 1
    assert unknown.status_code == 409
    assert len(gateway.images) == 1


async def test_bible_approval_through_api(client, seed):
    project = await seed.project()
    hero = await seed.asset(project, "character", approved_image_url="https://cdn.test/h.png",
                            image_status=BibleAssetStatus.READY.value)
    alley = await seed.asset(project, "location", approved_image_url="https://cdn.test/a.png",
                             image_status=BibleAssetStatus.READY.value)

    await client.post(f"/api/projects/{project.id}/bible/{hero.id}/approve")
    response = await client.post(f"/api/projects/{project.id}/bible/{alley.id}/approve")

    assert response.json()["project_status"] == ProjectStatus.SCENE_VALIDATION.value
    status = (await client.get(f"/api/projects/{project.id}/bible-status")).json()
    assert status["all_approved"] is True


async def test_assembly_endpoints(client, seed, composer):
    project = await seed.project(status=ProjectStatus.ASSET_GENERATION.value)
    scene = await seed.scene(project, 1)
    await seed.ready_shot(scene, 1)

    too_few = await client.post(f"/api/projects/{project.id}/assembly/")
    assert too_few.status_code == 409

    await seed.ready_shot(scene, 2)
    assert (await client.get(f"/api/projects/{project.id}")).json()["status"] == ProjectStatus.EXPORTING.value

    order = (await client.get(f"/api/projects/{project.id}/assembly/order")).json()
    assert [s["shot_number"] for s in order] == [1, 2]

    assembled = await client.post(f"/api/projects/{project.id}/assembly/")
    assert assembled.status_code == 200
    reel = (await client.get(f"/api/projects/{project.id}/assembly/status")).json()
    assert reel["status"] == "ready"
    assert (await client.post(f"/api/projects/{project.id}/assembly/approve")).status_code == 200


async def test_assembly_external_failure_is_502(client, seed, composer):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    await seed.ready_shot(scene, 1)
    await seed.ready_shot(scene, 2)
    composer.configured = False

    response = await client.post(f"/api/projects/{project.id}/assembly/")

    assert response.status_code == 502
    assert response.json()["detail"] == "Assembly webhook URL not configured"


async def test_timeline_endpoint(client, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    await seed.ready_shot(scene, 1)

    response = await client.get(f"/api/projects/{project.id}/assembly/timeline")

    assert response.status_code == 200
    body = response.json()
    assert body["total_duration_seconds"] == 8
    assert body["all_videos_ready"] is True
    assert (await client.get("/api/projects/missing/assembly/timeline")).status_code == 404


async def test_project_cancel_and_reset_shot_endpoints(client, seed, session_factory):
    project = await seed.project()
    scene = await seed.scene(project, 1, production_data={"shots": [{"prompt": "Mara waits"}]})
    shot = await seed.shot(scene, 1, video_status=VideoStatus.GENERATING.value, job_id="j1")

    refused = await client.post(f"/api/videos/projects/{project.id}/reset-shots")
    assert refused.status_code == 409

    cancelled = await client.post(f"/api/videos/projects/{project.id}/cancel")
    assert cancelled.json()["shot_ids"] == [shot.id]
    assert (await client.delete(f"/api/videos/shots/{shot.id}")).status_code == 409

    reset = await client.post(f"/api/videos/projects/{project.id}/reset-shots")
    assert reset.status_code == 200
    assert len(reset.json()["shot_ids"]) == 1
    assert await _load(session_factory, SceneShot, shot.id) is None
