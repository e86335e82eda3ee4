import pytest
from sqlalchemy import select

from reelforge.models.video import SceneShot, SceneVideo, VideoStatus
from reelforge.services.admission import AdmissionQueue
from reelforge.services.gateway import GatewayResponse
from reelforge.services.results import Completion, ErrorKind


@pytest.fixture
def queue(session, config, gateway, blob_store):
    return AdmissionQueue(session, config, gateway, blob_store)


async def _scene_with_image(seed, project, number):
    scene = await seed.scene(project, number)
    variant = await seed.variant("scene", scene.id, is_selected=True, status="selected")
    scene.approved_image_id = variant.id
    scene.approved_image_url = variant.image_url
    await seed.session.commit()
    return scene, variant


async def test_request_generation_submits_video(queue, seed, gateway):
    project = await seed.project()
    scene, variant = await _scene_with_image(seed, project, 1)

    result = await queue.request_generation(scene.id)

    assert result.data["queued"] is False
    assert result.data["status"] == VideoStatus.GENERATING.value
    payload = gateway.videos[0]
    assert payload["image_url"] == variant.image_url
    assert payload["scene_video_id"] == result.data["video_id"]
    assert payload["callback_url"] == "http://api.test/api/webhooks/video"
    assert payload["aspect_ratio"] == "16:9"


async def test_request_generation_errors(queue, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    blank = await seed.variant("scene", scene.id, status="generating")

    assert (await queue.request_generation("nope")).error == "Scene not found"
    assert (await queue.request_generation(scene.id)).error == "Variant not found"
    no_image = await queue.request_generation(scene.id, blank.id)
    assert no_image.kind == ErrorKind.PRECONDITION_FAILED
    assert no_image.error == "Variant has no image URL"


async def test_existing_video_is_returned(queue, seed, gateway):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    first = await queue.request_generation(scene.id)

    second = await queue.request_generation(scene.id)

    assert second.data["video_id"] == first.data["video_id"]
    assert second.data["existing"] is True
    assert len(gateway.videos) == 1


async def test_cap_drops_with_queued_signal(queue, seed, gateway, session):
    project = await seed.project()
    scenes = [(await _scene_with_image(seed, project, n))[0] for n in (1, 2, 3)]

    results = [await queue.request_generation(s.id) for s in scenes]

    assert [r.data["queued"] for r in results] == [False, False, True]
    assert await queue.running_job_count() == 2
    assert len(gateway.videos) == 2
    videos = (await session.execute(select(SceneVideo))).scalars().all()
    assert {v.scene_id for v in videos} == {scenes[0].id, scenes[1].id}


async def test_shots_count_against_the_same_cap(queue, seed, gateway):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    shots = [await seed.shot(scene, n, prompt=f"shot {n}") for n in (1, 2, 3)]

    results = [await queue.request_shot_generation(s.id) for s in shots]

    assert [r.data["queued"] for r in results] == [False, False, True]
    assert shots[2].video_status == VideoStatus.PENDING.value
    assert gateway.videos[0]["shot_id"] == shots[0].id
    assert gateway.videos[0]["prompt"] == "shot 1"
    assert gateway.videos[0]["callback_url"] == "http://api.test/api/webhooks/shot-video"


async def test_shot_needs_approved_scene_image(queue, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    shot = await seed.shot(scene, 1)

    result = await queue.request_shot_generation(shot.id)

    assert result.error == "Scene has no approved image"


async def test_failed_submission_marks_video_failed(queue, seed, gateway):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    gateway.video_response = GatewayResponse(success=False, error="quota exceeded")

    result = await queue.request_generation(scene.id)

    assert result.data["status"] == VideoStatus.FAILED.value
    assert await queue.running_job_count() == 0


async def test_completion_frees_slot_and_sweep_admits_next(queue, seed, gateway, session):
    project = await seed.project()
    scenes = [(await _scene_with_image(seed, project, n))[0] for n in (1, 2, 3)]
    first, second, third = [await queue.request_generation(s.id) for s in scenes]
    assert third.data["queued"] is True

    done = await queue.apply_video_completion(
        first.data["video_id"], Completion.ready("https://gen.test/v1.mp4", duration_seconds=7.5)
    )
    assert done.data["project_id"] == project.id
    assert done.data["status"] == VideoStatus.READY.value

    swept = await queue.sweep(project.id)

    assert swept.data["triggered"] == 1
    video = await session.scalar(select(SceneVideo).where(SceneVideo.scene_id == scenes[2].id))
    assert swept.data["admitted"] == [video.id]
    assert len(gateway.videos) == 3


async def test_sweep_prefers_pending_shots_and_stops_at_cap(queue, seed):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    shots = [await seed.shot(scene, n) for n in (1, 2, 3)]
    await _scene_with_image(seed, project, 2)

    swept = await queue.sweep(project.id)

    assert swept.data["admitted"] == [shots[0].id, shots[1].id]
    assert await queue.running_job_count() == 2
    assert shots[2].video_status == VideoStatus.PENDING.value
    assert (await queue.video_stats(project.id))["total"] == 0


async def test_video_completion_is_idempotent(queue, seed, blob_store):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    video_id = (await queue.request_generation(scene.id)).data["video_id"]
    completion = Completion.ready("https://gen.test/v.mp4")

    await queue.apply_video_completion(video_id, completion)
    await queue.apply_video_completion(video_id, completion)
    late_failure = await queue.apply_video_completion(video_id, Completion.failed("expired"))

    assert late_failure.data["status"] == VideoStatus.READY.value
    assert list(blob_store.objects) == [f"videos/scenes/{scene.id}/{video_id}.mp4"]


async def test_shot_completion(queue, seed):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    shot = await seed.shot(scene, 1)
    await queue.request_shot_generation(shot.id)

    result = await queue.apply_shot_completion(
        shot.id, Completion.ready("https://gen.test/s.mp4", duration_seconds=6.2)
    )

    assert result.data["status"] == VideoStatus.READY.value
    assert shot.duration_seconds == 6
    assert shot.video_url == f"https://cdn.test/videos/scenes/{scene.id}/shots/{shot.id}.mp4"


async def test_shot_failure_callback(queue, seed):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    shot = await seed.shot(scene, 1, video_status=VideoStatus.GENERATING.value, job_id="j1")

    result = await queue.apply_shot_completion(shot.id, Completion.failed("content filtered"))

    assert result.data["status"] == VideoStatus.FAILED.value
    assert shot.error_message == "content filtered"
    assert shot.job_id is None


async def test_create_shots_from_production_data(queue, seed, session):
    project = await seed.project()
    scene = await seed.scene(project, 1, production_data={"shots": [
        {"veo3_prompt": {"subject": "Mara", "action": "lights a cigarette"}, "duration": 6},
        {"action_prompt": "Jonah turns away"},
    ]})

    result = await queue.create_shots(scene.id)

    shots = (await session.execute(
        select(SceneShot).where(SceneShot.scene_id == scene.id).order_by(SceneShot.shot_number)
    )).scalars().all()
    assert result.data["shot_ids"] == [s.id for s in shots]
    assert [s.prompt for s in shots] == ["Mara. lights a cigarette", "Jonah turns away"]
    assert [s.duration_seconds for s in shots] == [6, 8]


async def test_create_shots_refused_while_generating(queue, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1)
    await seed.shot(scene, 1, video_status=VideoStatus.GENERATING.value)

    result = await queue.create_shots(scene.id, [{"prompt": "new plan"}])

    assert result.kind == ErrorKind.PRECONDITION_FAILED


async def test_cancel_and_cancel_shot(queue, seed, session):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    video = await seed.video(scene)
    shot = await seed.shot(
        scene, 1, video_status=VideoStatus.GENERATING.value, job_id="j1", video_url="https://x/y.mp4"
    )

    assert (await queue.cancel(video.id)).data["scene_id"] == scene.id
    assert await session.get(SceneVideo, video.id) is None

    cancelled = await queue.cancel_shot(shot.id)
    assert cancelled.data["status"] == VideoStatus.PENDING.value
    assert shot.job_id is None and shot.video_url is None
    assert shot.error_message == "Cancelled by user"


async def test_cancel_refused_unless_generating(queue, seed, session):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    video = await seed.video(scene, status=VideoStatus.APPROVED.value, video_url="https://cdn.test/v.mp4")
    shot = await seed.ready_shot(scene, 1)

    refused_video = await queue.cancel(video.id)
    refused_shot = await queue.cancel_shot(shot.id)

    assert refused_video.kind == ErrorKind.PRECONDITION_FAILED
    assert refused_video.error == "Video is not currently generating"
    assert await session.get(SceneVideo, video.id) is not None
    assert refused_shot.kind == ErrorKind.PRECONDITION_FAILED
    assert refused_shot.error == "Shot is not currently generating"
    assert shot.video_status == VideoStatus.READY.value
    assert shot.video_url is not None


async def test_cancel_project_only_touches_its_generating_jobs(queue, seed, session):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    busy = await seed.shot(scene, 1, video_status=VideoStatus.GENERATING.value, job_id="j1")
    done = await seed.ready_shot(scene, 2)
    other_scene = await seed.scene(project, 2)
    video = await seed.video(other_scene)
    other_project = await seed.project(title="Day Shift")
    foreign_scene = await seed.scene(other_project, 1)
    foreign = await seed.shot(foreign_scene, 1, video_status=VideoStatus.GENERATING.value, job_id="j2")

    result = await queue.cancel_project(project.id)

    assert result.data["shot_ids"] == [busy.id]
    assert result.data["video_ids"] == [video.id]
    assert busy.video_status == VideoStatus.PENDING.value
    assert busy.job_id is None and busy.error_message == "Cancelled by user"
    assert done.video_status == VideoStatus.READY.value
    assert await session.get(SceneVideo, video.id) is None
    assert foreign.video_status == VideoStatus.GENERATING.value and foreign.job_id == "j2"
    assert await queue.running_job_count() == 1
    assert (await queue.cancel_project("missing")).kind == ErrorKind.NOT_FOUND


async def test_reset_shots_for_project_rebuilds_plans(queue, seed, session):
    project = await seed.project()
    planned = await seed.scene(project, 1, production_data={"shots": [
        {"prompt": "Mara waits"}, {"prompt": "Jonah arrives", "duration": 5},
    ]})
    await seed.ready_shot(planned, 1)
    unplanned = await seed.scene(project, 2)
    await seed.shot(unplanned, 1, prompt="stale")

    result = await queue.reset_shots_for_project(project.id)

    shots = (await session.execute(
        select(SceneShot).where(SceneShot.scene_id == planned.id).order_by(SceneShot.shot_number)
    )).scalars().all()
    assert result.data["shot_ids"] == [s.id for s in shots]
    assert [s.prompt for s in shots] == ["Mara waits", "Jonah arrives"]
    assert all(s.video_status == VideoStatus.PENDING.value and s.video_url is None for s in shots)
    assert [s.duration_seconds for s in shots] == [8, 5]
    assert result.data["scenes_without_shots"] == [unplanned.id]
    leftover = await session.scalar(select(SceneShot).where(SceneShot.scene_id == unplanned.id))
    assert leftover is None


async def test_reset_shots_refused_while_generating(queue, seed):
    project = await seed.project()
    scene = await seed.scene(project, 1, production_data={"shots": [{"prompt": "again"}]})
    await seed.shot(scene, 1, video_status=VideoStatus.GENERATING.value)

    result = await queue.reset_shots_for_project(project.id)

    assert result.kind == ErrorKind.PRECONDITION_FAILED


async def test_regenerate_respects_cap(queue, seed, config, gateway):
    project = await seed.project()
    scene, variant = await _scene_with_image(seed, project, 1)
    failed = await seed.video(scene, status=VideoStatus.FAILED.value, source_variant_id=variant.id)
    busy_scene = await seed.scene(project, 2)
    for n in range(config.max_concurrent_video_jobs):
        await seed.shot(busy_scene, n + 1, video_status=VideoStatus.GENERATING.value)

    refused = await queue.regenerate(failed.id)

    assert refused.kind == ErrorKind.PRECONDITION_FAILED
    assert refused.error == "Batch limit reached (2 concurrent jobs). Please wait."
    assert gateway.videos == []


async def test_regenerate_resets_and_resubmits(queue, seed, gateway):
    project = await seed.project()
    scene, variant = await _scene_with_image(seed, project, 1)
    failed = await seed.video(
        scene, status=VideoStatus.FAILED.value, source_variant_id=variant.id, error_message="boom",
    )

    result = await queue.regenerate(failed.id)

    assert result.data["status"] == VideoStatus.GENERATING.value
    assert failed.error_message is None
    assert gateway.videos[0]["scene_video_id"] == failed.id


async def test_approve_video_requires_ready(queue, seed):
    project = await seed.project()
    scene, _ = await _scene_with_image(seed, project, 1)
    video = await seed.video(scene)

    refused = await queue.approve_video(video.id)
    video.status = VideoStatus.READY.value
    approved = await queue.approve_video(video.id)

    assert refused.kind == ErrorKind.PRECONDITION_FAILED
    assert approved.data["status"] == VideoStatus.APPROVED.value
