import pytest
from conftest import connect, names, open_room, received, send

from app.core.errors import AlreadyVoted, InvalidOption, InvalidPayload, NotRoomHost, PollNotActive, PollNotFound, RoomNotFound
from app.models.room import PollStatus


def assert_tally_consistent(poll):
    assert sum(option.votes for option in poll.options) == poll.total_votes
    voters = [voter for option in poll.options for voter in option.voters]
    assert len(voters) == len(set(voters)) == poll.total_votes


@pytest.fixture
def gaming_room(coordinator):
    host = connect(coordinator, "host")
    open_room(coordinator, host, "GAME-1")
    return coordinator.rooms.get("GAME-1")


@pytest.fixture
def event_room(coordinator):
    host = connect(coordinator, "host")
    room = coordinator.membership.create_event("Hana", title="Launch")
    open_room(coordinator, host, room.id)
    return room


def test_create_assigns_sequential_options(coordinator, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke", "Inferno"])

    assert [(o.id, o.text, o.votes) for o in poll.options] == [(0, "Dust", 0), (1, "Nuke", 0), (2, "Inferno", 0)]
    assert poll.status is PollStatus.ACTIVE
    assert poll.duration_seconds == 60
    assert (poll.expires_at - poll.created_at).total_seconds() == 60
    assert gaming_room.poll_ids == {poll.id}
    assert names(received(coordinator, "conn-host")) == ["poll-started"]


def test_create_validates_room_and_options(coordinator, gaming_room):
    with pytest.raises(RoomNotFound):
        coordinator.polls.create("GAME-NOPE", "Q?", ["a", "b"])
    with pytest.raises(InvalidPayload):
        coordinator.polls.create(gaming_room.id, "Q?", ["only one"])
    with pytest.raises(InvalidPayload):
        coordinator.polls.create(gaming_room.id, "  ", ["a", "b"])
    with pytest.raises(InvalidPayload):
        coordinator.polls.create(gaming_room.id, "Q?", ["a", "b"], duration_seconds=100000)


def test_votes_keep_tally_consistent(coordinator, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"])

    coordinator.polls.vote(poll.id, 0, "alice")
    coordinator.polls.vote(poll.id, 1, "bob")
    coordinator.polls.vote(poll.id, 1, "carol")

    assert [o.votes for o in poll.options] == [1, 2]
    assert poll.total_votes == 3
    assert_tally_consistent(poll)


def test_subject_cannot_vote_twice_even_on_other_option(coordinator, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"])
    coordinator.polls.vote(poll.id, 0, "alice")

    with pytest.raises(AlreadyVoted):
        coordinator.polls.vote(poll.id, 1, "alice")
    with pytest.raises(AlreadyVoted):
        coordinator.polls.vote(poll.id, 0, "alice")

    assert poll.total_votes == 1
    assert_tally_consistent(poll)


def test_vote_errors(coordinator, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"])

    with pytest.raises(PollNotFound):
        coordinator.polls.vote("POLL-MISSING", 0, "alice")
    with pytest.raises(InvalidOption):
        coordinator.polls.vote(poll.id, 2, "alice")
    with pytest.raises(InvalidOption):
        coordinator.polls.vote(poll.id, -1, "alice")

    assert poll.total_votes == 0


def test_poll_expires_after_duration(coordinator, scheduler, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"], duration_seconds=30)
    received(coordinator, "conn-host")

    scheduler.advance(29)
    assert poll.status is PollStatus.ACTIVE

    scheduler.advance(1)
    assert poll.status is PollStatus.CLOSED
    [ended] = received(coordinator, "conn-host")
    assert ended["event"] == "poll-ended"
    assert ended["data"]["pollId"] == poll.id

    with pytest.raises(PollNotActive):
        coordinator.polls.vote(poll.id, 0, "alice")

    scheduler.advance(60)
    assert received(coordinator, "conn-host") == []


def test_deleted_room_timer_is_noop(coordinator, scheduler, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"])
    handle = poll.expiry_handle

    coordinator.rooms.delete(gaming_room.id)

    assert handle.cancelled
    coordinator.polls._expire(gaming_room.id, poll.id)
    scheduler.advance(120)
    assert poll.status is PollStatus.ACTIVE
    with pytest.raises(PollNotFound):
        coordinator.polls.vote(poll.id, 0, "alice")


def test_event_vote_fans_delta_to_others(coordinator, event_room):
    ann = connect(coordinator, "ann")
    send(coordinator, ann, "join-room", roomId=event_room.id, memberProfile={"name": "Ann"})
    poll = coordinator.polls.create(event_room.id, "Ready?", ["Yes", "No"])
    received(coordinator, ann)
    received(coordinator, "conn-host")

    send(coordinator, ann, "vote-poll", pollId=poll.id, optionId=0)

    [delta] = received(coordinator, "conn-host")
    assert delta["event"] == "poll-vote"
    assert delta["data"] == {"pollId": poll.id, "optionId": 0, "subjectId": "ann", "totalVotes": 1}
    [ack] = received(coordinator, ann)
    assert ack["data"]["poll"]["totalVotes"] == 1


def test_non_event_vote_answers_only_the_voter(coordinator, gaming_room):
    bob = connect(coordinator, "bob")
    send(coordinator, bob, "join-room", roomId=gaming_room.id, memberProfile={"name": "Bob"})
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"])
    received(coordinator, bob)
    received(coordinator, "conn-host")

    send(coordinator, bob, "vote-poll", pollId=poll.id, optionId=1)

    assert received(coordinator, "conn-host") == []
    [ack] = received(coordinator, bob)
    assert ack["data"]["poll"]["options"][1]["voters"] == ["bob"]


def test_event_host_can_end_poll_once(coordinator, event_room):
    ann = connect(coordinator, "ann")
    send(coordinator, ann, "join-room", roomId=event_room.id, memberProfile={"name": "Ann"})
    poll = coordinator.polls.create(event_room.id, "Ready?", ["Yes", "No"])
    received(coordinator, ann)

    with pytest.raises(NotRoomHost):
        coordinator.polls.end(poll.id, actor_id=ann)

    coordinator.polls.end(poll.id, actor_id="conn-host")

    assert poll.status is PollStatus.CLOSED
    assert poll.expiry_handle is None
    assert names(received(coordinator, ann)) == ["poll-ended"]
    with pytest.raises(PollNotActive):
        coordinator.polls.end(poll.id, actor_id="conn-host")


def test_only_event_polls_end_early(coordinator, gaming_room):
    poll = coordinator.polls.create(gaming_room.id, "Best map?", ["Dust", "Nuke"])

    with pytest.raises(InvalidPayload):
        coordinator.polls.end(poll.id, actor_id="conn-host")


def test_explicit_zero_duration_is_rejected(coordinator, gaming_room):
    with pytest.raises(InvalidPayload):
        coordinator.polls.create(gaming_room.id, "Q?", ["a", "b"], duration_seconds=0)

    assert gaming_room.polls == {}


def test_ended_sessions_leave_no_poll_index(coordinator):
    poll_ids = []
    for index in range(5):
        host = connect(coordinator, f"host{index}")
        room_id = open_room(coordinator, host, f"GAME-{index}")
        poll_ids.append(coordinator.polls.create(room_id, "Again?", ["Yes", "No"]).id)
        send(coordinator, host, "end-session", roomId=room_id)

    assert len(coordinator.rooms) == 0
    assert coordinator.polls._poll_rooms == {}
    for poll_id in poll_ids:
        with pytest.raises(PollNotFound):
            coordinator.polls.get(poll_id)


def test_event_end_announces_closed_polls(coordinator, event_room):
    ann = connect(coordinator, "ann")
    send(coordinator, ann, "join-room", roomId=event_room.id, memberProfile={"name": "Ann"})
    poll = coordinator.polls.create(event_room.id, "Ready?", ["Yes", "No"])
    received(coordinator, ann)

    send(coordinator, "conn-host", "event-end", roomId=event_room.id)

    assert poll.status is PollStatus.CLOSED
    messages = received(coordinator, ann)
    assert names(messages) == ["poll-ended", "event-ended"]
    assert messages[0]["data"]["pollId"] == poll.id
