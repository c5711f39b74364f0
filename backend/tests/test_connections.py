import pytest

from conftest import make_user
from tsureben.core.errors import ConfirmationRequired, UserNotFound
from tsureben.services import connections


def _emails(users):
    return [user.email for user in users]


def test_classify_by_request_direction(db):
    me = make_user(db, "taro@tsureben.jp", tureben_requests=["mutual@tsureben.jp", "sent@tsureben.jp"])
    mutual = make_user(db, "mutual@tsureben.jp", tureben_requests=["taro@tsureben.jp"])
    sent = make_user(db, "sent@tsureben.jp")
    received = make_user(db, "received@tsureben.jp", tureben_requests=["taro@tsureben.jp"])
    make_user(db, "stranger@tsureben.jp")

    result = connections.classify(me, [me, mutual, sent, received])

    assert _emails(result.mutual) == ["mutual@tsureben.jp"]
    assert _emails(result.sent) == ["sent@tsureben.jp"]
    assert _emails(result.received) == ["received@tsureben.jp"]
    assert connections.is_mutual(me, mutual) and connections.is_mutual(mutual, me)


def test_accept_makes_pair_mutual(db):
    me = make_user(db, "taro@tsureben.jp")
    other = make_user(db, "hanako@tsureben.jp", tureben_requests=["taro@tsureben.jp"])

    connections.accept(db, me, other.email)
    connections.accept(db, me, other.email)

    assert me.tureben_requests == ["hanako@tsureben.jp"]
    assert connections.is_mutual(me, other)


def test_send_requests_skips_self_and_duplicates(db):
    me = make_user(db, "taro@tsureben.jp", tureben_requests=["hanako@tsureben.jp"])
    make_user(db, "hanako@tsureben.jp")
    make_user(db, "jiro@tsureben.jp")

    connections.send_requests(db, me, ["jiro@tsureben.jp", "taro@tsureben.jp", "hanako@tsureben.jp"])

    assert me.tureben_requests == ["hanako@tsureben.jp", "jiro@tsureben.jp"]
    with pytest.raises(UserNotFound):
        connections.send_requests(db, me, ["ghost@tsureben.jp"])


def test_cancel_request(db):
    me = make_user(db, "taro@tsureben.jp", tureben_requests=["hanako@tsureben.jp"])
    connections.cancel_request(db, me, "hanako@tsureben.jp")
    assert me.tureben_requests == []


def test_hide_needs_confirmation_and_picks_list(db):
    me = make_user(db, "taro@tsureben.jp", tureben_requests=["mutual@tsureben.jp"])
    mutual = make_user(db, "mutual@tsureben.jp", tureben_requests=["taro@tsureben.jp"])
    pending = make_user(db, "pending@tsureben.jp", tureben_requests=["taro@tsureben.jp"])

    with pytest.raises(ConfirmationRequired):
        connections.hide(db, me, mutual.email)

    assert connections.hide(db, me, mutual.email, confirm=True) == "hidden_mates"
    assert connections.hide(db, me, pending.email, confirm=True) == "hidden_requests"

    result = connections.classify(me, [mutual, pending])
    assert _emails(result.hidden_mates) == ["mutual@tsureben.jp"]
    assert _emails(result.hidden_pending) == ["pending@tsureben.jp"]
    assert result.mutual == [] and result.received == []
    # hiding is one-sided
    assert connections.is_mutual(mutual, me)

    connections.unhide(db, me, mutual.email)
    assert _emails(connections.classify(me, [mutual]).mutual) == ["mutual@tsureben.jp"]


def test_search_matches_name_and_excludes_self(db):
    me = make_user(db, "taro@tsureben.jp", name="山田太郎")
    make_user(db, "jiro@tsureben.jp", name="山田次郎")
    make_user(db, "hanako@tsureben.jp", name="佐藤花子")

    assert _emails(connections.search(db, me, "山田")) == ["jiro@tsureben.jp"]
    assert connections.search(db, me, "  ") == []
