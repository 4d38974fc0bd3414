import pytest

from campaign_engine.errors import ConfigurationError, OrganicPublishError, ValidationError
from campaign_engine.services.organic_publisher import OrganicPublisher
from campaign_engine.services.polling import PollPolicy

IMAGE_URL = "https://cdn.example.com/post.jpg"


def _publisher(fake_meta, attempts: int = 3) -> OrganicPublisher:
    return OrganicPublisher(
        fake_meta,
        "ig_1",
        poll_policy=PollPolicy(max_attempts=attempts, delay_seconds=0.5),
        sleep=lambda _: None,
    )


def test_publish_creates_waits_and_publishes(fake_meta):
    fake_meta.statuses = ["IN_PROGRESS", "FINISHED"]

    result = _publisher(fake_meta).publish(IMAGE_URL, "Fresh towels\n\n#laundry")

    assert result.ok is True
    assert result.readyConfirmed is True
    assert result.instagramId == "ig_1"
    container = fake_meta.calls_to("create_media_container")[0]
    assert container == {"instagram_id": "ig_1", "image_url": IMAGE_URL, "caption": "Fresh towels\n\n#laundry"}
    assert len(fake_meta.calls_to("get_media_container_status")) == 2
    assert fake_meta.calls_to("publish_media") == [{"instagram_id": "ig_1", "creation_id": result.containerId}]


def test_publish_proceeds_when_readiness_never_confirmed(fake_meta, meta_error):
    fake_meta.statuses = ["IN_PROGRESS", meta_error("Temporary failure", code=2), "IN_PROGRESS"]

    result = _publisher(fake_meta).publish(IMAGE_URL, "caption")

    assert result.readyConfirmed is False
    assert len(fake_meta.calls_to("get_media_container_status")) == 3
    assert len(fake_meta.calls_to("publish_media")) == 1


def test_publish_aborts_when_container_reports_error(fake_meta):
    fake_meta.statuses = ["IN_PROGRESS", "ERROR"]

    with pytest.raises(OrganicPublishError):
        _publisher(fake_meta).publish(IMAGE_URL, "caption")

    assert fake_meta.calls_to("publish_media") == []


def test_publish_never_runs_without_container_id(fake_meta):
    fake_meta.respond("create_media_container", {"success": True})

    with pytest.raises(OrganicPublishError) as excinfo:
        _publisher(fake_meta).publish(IMAGE_URL, "caption")

    assert excinfo.value.message.startswith("Instagram Media Container Creation Failed")
    assert fake_meta.calls_to("get_media_container_status") == []
    assert fake_meta.calls_to("publish_media") == []


def test_container_rejection_carries_remote_message(fake_meta, meta_error):
    fake_meta.fail("create_media_container", meta_error("Only photo or video can be accepted as media type.", code=9004))

    with pytest.raises(OrganicPublishError) as excinfo:
        _publisher(fake_meta).publish(IMAGE_URL, "caption")

    assert excinfo.value.remote_message == "Only photo or video can be accepted as media type."
    assert excinfo.value.code == 9004


def test_publish_failure_reports_container(fake_meta, meta_error):
    fake_meta.fail("publish_media", meta_error("Media ID is not available", code=9007))

    with pytest.raises(OrganicPublishError) as excinfo:
        _publisher(fake_meta).publish(IMAGE_URL, "caption")

    assert excinfo.value.created == {"containerId": fake_meta.calls_to("publish_media")[0]["creation_id"]}


def test_drive_links_are_rejected_before_remote_calls(fake_meta):
    with pytest.raises(ValidationError):
        _publisher(fake_meta).publish("https://drive.google.com/file/d/abc/view", "caption")

    assert fake_meta.calls == []


def test_for_connection_requires_instagram_id(meta_connection, db_session):
    meta_connection.ig_business_id = None
    meta_connection.instagram_actor_id = None

    with pytest.raises(ConfigurationError):
        OrganicPublisher.for_connection(meta_connection)
    with pytest.raises(ConfigurationError):
        OrganicPublisher.for_connection(None)


def test_for_connection_prefers_actor_id(meta_connection):
    meta_connection.instagram_actor_id = "actor_9"

    publisher = OrganicPublisher.for_connection(meta_connection)

    assert publisher.instagram_id == "actor_9"
    assert publisher.client.access_token == "user-token"
