from conftest import connect, names, open_room, received, send


def event_with_attendee(coordinator):
    host = connect(coordinator, "host")
    ann = connect(coordinator, "ann")
    room = coordinator.membership.create_event("Hana", title="Launch")
    open_room(coordinator, host, room.id)
    send(coordinator, ann, "join-room", roomId=room.id, memberProfile={"name": "Ann"})
    received(coordinator, host)
    received(coordinator, ann)
    return room, host, ann


def test_chat_is_logged_then_sent_to_whole_room(coordinator):
    host = connect(coordinator, "host")
    bob = connect(coordinator, "bob")
    open_room(coordinator, host, "GAME-1")
    send(coordinator, bob, "join-room", roomId="GAME-1", memberProfile={"name": "Bob"})
    received(coordinator, host)
    received(coordinator, bob)

    send(coordinator, bob, "send-message", roomId="GAME-1", message={"text": "gg"})

    room = coordinator.rooms.get("GAME-1")
    assert [m["text"] for m in room.messages] == ["gg"]
    assert room.messages[0]["connectionId"] == bob
    for conn in (host, bob):
        [message] = received(coordinator, conn)
        assert message["event"] == "message"
        assert message["data"]["text"] == "gg"


def test_disabled_event_chat_is_dropped_silently(coordinator):
    room, host, ann = event_with_attendee(coordinator)

    send(coordinator, ann, "toggle-chat", roomId=room.id, enabled=False)
    assert received(coordinator, ann)[0]["data"]["code"] == "NotRoomHost"

    send(coordinator, host, "toggle-chat", roomId=room.id, enabled=False)
    assert names(received(coordinator, ann)) == ["chat-toggled"]

    send(coordinator, ann, "send-message", roomId=room.id, message={"text": "hello?"})

    assert room.messages == []
    assert received(coordinator, ann) == []
    assert received(coordinator, host) == []


def test_raise_hand_updates_member_and_skips_sender(coordinator):
    room, host, ann = event_with_attendee(coordinator)

    send(coordinator, ann, "raise-hand", roomId=room.id)

    assert room.find_member(ann).hand_raised is True
    assert received(coordinator, ann) == []
    [raised] = received(coordinator, host)
    assert raised == {"event": "hand-raised", "data": {"subjectId": ann, "flag": True}}

    send(coordinator, ann, "lower-hand", roomId=room.id)
    assert room.find_member(ann).hand_raised is False


def test_toggle_audio_flips_or_sets(coordinator):
    room, host, ann = event_with_attendee(coordinator)

    send(coordinator, ann, "toggle-audio", roomId=room.id)
    assert room.find_member(ann).audio is False
    send(coordinator, ann, "toggle-audio", roomId=room.id, flag=False)
    assert room.find_member(ann).audio is False
    assert names(received(coordinator, host)) == ["audio-toggled", "audio-toggled"]


def test_shared_document_is_stored_and_announced(coordinator):
    room, host, ann = event_with_attendee(coordinator)

    send(coordinator, host, "share-document", roomId=room.id, document={"name": "slides.pdf", "size": 1024})

    assert [d.name for d in room.documents] == ["slides.pdf"]
    [shared] = received(coordinator, ann)
    assert shared["event"] == "document-shared"
    assert shared["data"]["size"] == 1024


def test_room_relay_forwards_to_others(coordinator):
    host = connect(coordinator, "host")
    bob = connect(coordinator, "bob")
    open_room(coordinator, host, "GAME-1")
    send(coordinator, bob, "join-room", roomId="GAME-1", memberProfile={"name": "Bob"})
    received(coordinator, bob)

    send(coordinator, host, "whiteboard-draw", roomId="GAME-1", data={"x": 1, "y": 2})

    [draw] = received(coordinator, bob)
    assert draw == {"event": "whiteboard-draw", "data": {"x": 1, "y": 2, "fromConnectionId": host}}
    assert received(coordinator, host) == []


def test_signaling_relays_opaque_payload_to_target(coordinator):
    alice = connect(coordinator, "alice")
    bob = connect(coordinator, "bob")
    offer = {"type": "offer", "sdp": "v=0..."}

    send(coordinator, alice, "signal-offer", targetConnectionId=bob, payload=offer)
    send(coordinator, bob, "signal-answer", targetConnectionId=alice, payload={"type": "answer"})
    send(coordinator, alice, "signal-ice", targetConnectionId=bob, payload={"candidate": "a=1"})

    assert received(coordinator, bob) == [
        {"event": "offer", "data": {"payload": offer, "fromConnectionId": alice}},
        {"event": "ice-candidate", "data": {"payload": {"candidate": "a=1"}, "fromConnectionId": alice}},
    ]
    assert names(received(coordinator, alice)) == ["answer"]


def test_signaling_to_gone_target_is_dropped(coordinator):
    alice = connect(coordinator, "alice")
    bob = connect(coordinator, "bob")
    coordinator.disconnect(bob)

    send(coordinator, alice, "signal-offer", targetConnectionId=bob, payload={"sdp": "x"})

    assert received(coordinator, alice) == []
    assert coordinator.signaling.relay("signal-ice", alice, "conn-nobody", None) is False


def classroom_with_student(coordinator):
    host = connect(coordinator, "tutor")
    sara = connect(coordinator, "sara")
    open_room(coordinator, host, "CLASS-T1")
    send(coordinator, sara, "join-room", roomId="CLASS-T1", memberProfile={"name": "Sara"})
    send(coordinator, host, "approve-join", roomId="CLASS-T1", requestConnectionId=sara)
    send(coordinator, sara, "confirm-join", roomId="CLASS-T1", memberProfile={"name": "Sara"})
    received(coordinator, host)
    received(coordinator, sara)
    return coordinator.rooms.get("CLASS-T1"), host, sara


def test_member_cannot_flip_another_members_audio(coordinator):
    host = connect(coordinator, "host")
    open_room(coordinator, host, "GAME-1")
    bob = connect(coordinator, "bob")
    cara = connect(coordinator, "cara")
    eve = connect(coordinator, "eve")
    for conn, name in ((bob, "Bob"), (cara, "Cara")):
        send(coordinator, conn, "join-room", roomId="GAME-1", memberProfile={"name": name})
    room = coordinator.rooms.get("GAME-1")
    for conn in (host, bob, cara):
        received(coordinator, conn)

    send(coordinator, bob, "toggle-audio", roomId="GAME-1", subjectId="cara")
    assert received(coordinator, bob)[0]["data"]["code"] == "NotRoomHost"
    send(coordinator, eve, "toggle-video", roomId="GAME-1")
    assert received(coordinator, eve)[0]["data"]["code"] == "InvalidPayload"
    assert room.find_member(cara).audio is True
    assert received(coordinator, cara) == []

    send(coordinator, host, "toggle-audio", roomId="GAME-1", subjectId="cara", flag=False)

    assert room.find_member(cara).audio is False
    [muted] = received(coordinator, cara)
    assert muted == {"event": "audio-toggled", "data": {"subjectId": "cara", "flag": False}}


def test_host_notes_are_stored_and_shared(coordinator):
    room, host, sara = classroom_with_student(coordinator)

    send(coordinator, host, "upload-note", roomId=room.id, note={"title": "Week 1", "url": "/notes/1.pdf"})

    assert [n["title"] for n in room.notes] == ["Week 1"]
    [shared] = received(coordinator, sara)
    assert shared["event"] == "notes-shared"
    assert shared["data"]["url"] == "/notes/1.pdf"
    assert received(coordinator, host) == []

    send(coordinator, sara, "upload-note", roomId=room.id, note={"title": "Mine"})
    assert received(coordinator, sara)[0]["data"]["code"] == "NotRoomHost"
    assert len(room.notes) == 1


def test_test_results_build_a_leaderboard(coordinator):
    room, host, sara = classroom_with_student(coordinator)

    send(coordinator, host, "start-test", roomId=room.id, test={"id": "quiz-1", "questions": 3})
    assert received(coordinator, sara) == [{"event": "test-started", "data": {"id": "quiz-1", "questions": 3}}]

    send(coordinator, sara, "submit-test", roomId=room.id, result={"testId": "quiz-1", "score": 2})

    assert [(r["subjectId"], r["name"], r["score"]) for r in room.test_results] == [("sara", "Sara", 2)]
    for conn in (host, sara):
        [board] = received(coordinator, conn)
        assert board["event"] == "leaderboard-updated"
        assert board["data"]["results"][0]["score"] == 2

    send(coordinator, host, "submit-test", roomId=room.id, result={"score": 3})
    assert received(coordinator, host)[0]["data"]["code"] == "InvalidPayload"


def test_notes_and_tests_need_a_teaching_room(coordinator):
    host = connect(coordinator, "host")
    open_room(coordinator, host, "GAME-1")

    send(coordinator, host, "upload-note", roomId="GAME-1", note={"title": "x"})

    assert received(coordinator, host)[0]["data"]["code"] == "InvalidPayload"


def test_host_screen_share_and_room_info(coordinator):
    room, host, sara = classroom_with_student(coordinator)

    send(coordinator, host, "start-screen-share", roomId=room.id, streamData={"streamId": "s1"})
    send(coordinator, sara, "stop-screen-share", roomId=room.id)
    started, refused = received(coordinator, sara)
    assert started["event"] == "screen-share-started"
    assert refused["data"]["code"] == "NotRoomHost"
    assert started["data"]["hostId"] == host
    assert started["data"]["streamData"] == {"streamId": "s1"}

    send(coordinator, sara, "share-user-info", roomId=room.id, userId="sara", name="Sara")
    send(coordinator, host, "sync-participants", roomId=room.id, participants=[{"id": "sara"}])

    [info] = received(coordinator, host)
    assert info["data"] == {"userId": "sara", "name": "Sara", "isHost": False}
    [update] = received(coordinator, sara)
    assert update == {"event": "participants-update", "data": {"participants": [{"id": "sara"}], "total": 1}}
