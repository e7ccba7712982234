"""Rendering for every notification kind the dispatcher delivers."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from meowlah.domain.alerts.models import AlertEvent, PushMessage

LOST_CAT_NEARBY = "lost_cat_nearby"
SIGHTING = "sighting"
LIKE = "like"
COMMENT = "comment"
FOLLOW = "follow"
TRIBUTE = "tribute"
CONDOLENCE = "condolence"
BOOST_ACTIVATED = "boost_activated"


def lost_cat_nearby(event: AlertEvent) -> PushMessage:
	url = f"/lost-cats/{event.subject_id}"
	return PushMessage(
		kind=LOST_CAT_NEARBY,
		title=f"Lost Cat Alert: {event.label}",
		body=f"A cat named {event.label} was reported missing near your area.",
		push_body=f"A cat named {event.label} was reported missing near your area. Tap to help.",
		url=url,
		tag=f"lost-cat-{event.subject_id}",
		data={"lost_cat_id": event.subject_id, "url": url},
	)


def sighting(lost_cat_id: str, cat_name: str, note: Optional[str] = None) -> PushMessage:
	url = f"/lost-cats/{lost_cat_id}"
	return PushMessage(
		kind=SIGHTING,
		title=f"New sighting of {cat_name}!",
		body=note or "Someone reported seeing your cat.",
		url=url,
		data={"lost_cat_id": lost_cat_id, "url": url},
	)


def like(post_id: str, actor_id: str, actor_name: str) -> PushMessage:
	return PushMessage(
		kind=LIKE,
		title="New like",
		body=f"{actor_name} liked your post",
		url=f"/posts/{post_id}",
		data={"post_id": post_id, "liker_id": actor_id},
	)


def comment(post_id: str, comment_id: str, actor_name: str, text: str) -> PushMessage:
	return PushMessage(
		kind=COMMENT,
		title="New comment",
		body=f"{actor_name} commented: {text.strip()[:80]}",
		url=f"/posts/{post_id}",
		data={"post_id": post_id, "comment_id": comment_id},
	)


def follow(actor_id: str, actor_name: str) -> PushMessage:
	return PushMessage(
		kind=FOLLOW,
		title="New follower",
		body=f"{actor_name} started following you",
		url=f"/profile/{actor_name}",
		data={"follower_id": actor_id},
	)


def tribute(memorial_id: str, cat_name: str, message: Optional[str] = None) -> PushMessage:
	url = f"/memorial/{memorial_id}"
	return PushMessage(
		kind=TRIBUTE,
		title=f"Someone lit a candle for {cat_name}",
		body=message or f"A tribute was left on {cat_name}'s memorial.",
		url=url,
		data={"memorial_id": memorial_id, "url": url},
	)


def condolence(memorial_id: str, cat_name: str, message: str) -> PushMessage:
	url = f"/memorial/{memorial_id}"
	return PushMessage(
		kind=CONDOLENCE,
		title=f"New condolence for {cat_name}",
		body=message[:100],
		url=url,
		data={"memorial_id": memorial_id, "url": url},
	)


def boost_activated(
	boost_id: str,
	target_type: str,
	target_id: str,
	duration_hours: int,
	expires_at: datetime,
) -> PushMessage:
	return PushMessage(
		kind=BOOST_ACTIVATED,
		title="Boost activated!",
		body=f"Your {target_type} boost is now active for {duration_hours} hours.",
		data={
			"boost_id": boost_id,
			"target_type": target_type,
			"target_id": target_id,
			"expires_at": expires_at.isoformat(),
		},
	)
