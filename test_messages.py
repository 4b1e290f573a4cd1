import pytest

from chat_api.core.errors import InvalidArgument, NotFound, PermissionDenied
from chat_api.crud import users as users_crud
from chat_api.models import Message, User

from conftest import at


@pytest.fixture()
def people(make_user):
    return make_user("Alice"), make_user("Bob"), make_user("Carol")


@pytest.fixture()
def team(people, groups):
    alice, bob, _ = people
    return groups.create_group(alice.id, "Team", [bob.id])


def test_send_direct_message_snapshots_both_parties(people, messages):
    alice, bob, _ = people
    msg = messages.send_message(alice, "hi bob", receiver_id=bob.id)

    assert msg.sender_id == alice.id
    assert msg.receiver_id == bob.id
    assert msg.group_id is None
    assert (msg.sender_name, msg.sender_phone) == ("Alice", alice.phone_number)
    assert (msg.receiver_name, msg.receiver_phone) == ("Bob", bob.phone_number)


def test_send_group_message(people, team, messages):
    _, bob, _ = people
    msg = messages.send_message(bob, "hello team", group_id=team.id)

    assert msg.group_id == team.id
    assert msg.receiver_id is None
    assert msg.receiver_name is None


@pytest.mark.parametrize("target", ["both", "neither"])
def test_exactly_one_target(people, team, messages, target):
    alice, bob, _ = people
    kwargs = {"receiver_id": bob.id, "group_id": team.id} if target == "both" else {}

    with pytest.raises(InvalidArgument) as exc:
        messages.send_message(alice, "hmm", **kwargs)
    assert exc.value.message == "Exactly one of receiverId or groupId must be provided"


def test_receiver_must_be_active(people, db, messages):
    alice, bob, _ = people
    users_crud.soft_delete(db, bob)

    with pytest.raises(InvalidArgument):
        messages.send_message(alice, "anyone?", receiver_id=bob.id)
    with pytest.raises(InvalidArgument):
        messages.send_message(alice, "anyone?", receiver_id="00000000-0000-0000-0000-000000000000")


def test_group_message_needs_membership(people, team, messages):
    _, _, carol = people
    with pytest.raises(PermissionDenied):
        messages.send_message(carol, "let me in", group_id=team.id)
    with pytest.raises(NotFound):
        messages.send_message(carol, "where", group_id="00000000-0000-0000-0000-000000000000")


def test_snapshots_survive_account_deletion(people, db, messages):
    alice, bob, _ = people
    msg = messages.send_message(alice, "before you go", receiver_id=bob.id)

    users_crud.soft_delete(db, alice)
    users_crud.soft_delete(db, bob)

    stored = db.get(Message, msg.id)
    assert stored.sender_name == "Alice"
    assert stored.receiver_name == "Bob"
    assert stored.sender_id == alice.id
    assert db.get(User, alice.id).name == users_crud.DELETED_USER_NAME


def test_only_participants_read_direct_messages(people, messages):
    alice, bob, carol = people
    msg = messages.send_message(alice, "secret", receiver_id=bob.id)

    assert messages.get_message(bob.id, msg.id).id == msg.id
    with pytest.raises(PermissionDenied):
        messages.get_message(carol.id, msg.id)
    with pytest.raises(NotFound):
        messages.get_message(alice.id, "00000000-0000-0000-0000-000000000000")


def test_only_sender_edits_or_deletes(people, messages):
    alice, bob, _ = people
    msg = messages.send_message(alice, "draft", receiver_id=bob.id)

    with pytest.raises(PermissionDenied):
        messages.update_message(bob.id, msg.id, "hijacked")
    with pytest.raises(PermissionDenied):
        messages.delete_message(bob.id, msg.id)

    assert messages.update_message(alice.id, msg.id, "final").content == "final"


def test_update_without_content_changes_nothing(people, messages):
    alice, bob, _ = people
    msg = messages.send_message(alice, "same", receiver_id=bob.id)
    assert messages.update_message(alice.id, msg.id, None).content == "same"


def test_replies_listed_oldest_first(people, messages, make_message):
    alice, bob, _ = people
    parent = make_message(alice, receiver=bob, created_at=at(0))
    late = make_message(bob, receiver=alice, created_at=at(9), reply_to_id=parent.id)
    early = make_message(alice, receiver=bob, created_at=at(3), reply_to_id=parent.id)

    assert [m.id for m in messages.list_replies(bob.id, parent.id)] == [early.id, late.id]


def test_deleting_a_parent_keeps_its_replies(people, db, messages):
    alice, bob, _ = people
    parent = messages.send_message(alice, "question", receiver_id=bob.id)
    reply = messages.send_message(bob, "answer", receiver_id=alice.id, reply_to_id=parent.id)
    parent_id, reply_id = parent.id, reply.id

    messages.delete_message(alice.id, parent_id)

    assert db.get(Message, parent_id) is None
    orphan = db.get(Message, reply_id)
    assert orphan is not None
    assert orphan.reply_to_id is None


def test_reply_must_stay_in_the_conversation(people, team, messages):
    alice, bob, carol = people
    dm = messages.send_message(alice, "just us", receiver_id=bob.id)

    with pytest.raises(InvalidArgument) as exc:
        messages.send_message(bob, "to the group", group_id=team.id, reply_to_id=dm.id)
    assert exc.value.message == "Reply target belongs to a different conversation"

    other_dm = messages.send_message(carol, "hi alice", receiver_id=alice.id)
    with pytest.raises(InvalidArgument):
        messages.send_message(alice, "wrong thread", receiver_id=bob.id, reply_to_id=other_dm.id)


def test_reply_to_unreadable_message_looks_missing(people, messages):
    alice, bob, carol = people
    dm = messages.send_message(alice, "private", receiver_id=bob.id)

    with pytest.raises(InvalidArgument) as exc:
        messages.send_message(carol, "nosy", receiver_id=alice.id, reply_to_id=dm.id)
    assert exc.value.message == f"Reply target message with ID {dm.id} not found"


def test_group_thread_reply(people, team, messages):
    alice, bob, _ = people
    parent = messages.send_message(alice, "agenda?", group_id=team.id)
    reply = messages.send_message(bob, "item one", group_id=team.id, reply_to_id=parent.id)

    assert reply.reply_to_id == parent.id
    assert [m.id for m in messages.list_replies(alice.id, parent.id)] == [reply.id]
