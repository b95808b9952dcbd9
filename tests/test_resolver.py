from types import SimpleNamespace

import pytest

from tgfetch.errors import ClientNotConnected, PeerUnreachable
from tgfetch.link import LinkKind, LinkReference
from tgfetch.resolver import id_representations, resolve_peer

from conftest import FakeClient

PRIVATE = LinkReference(LinkKind.PRIVATE, "1234567890", 5)


def dialog(entity_id, dialog_id=None, title="chat"):
    entity = SimpleNamespace(id=entity_id, title=title)
    return SimpleNamespace(entity=entity, id=dialog_id if dialog_id is not None else entity_id)


def test_id_representations():
    assert id_representations("42") == {"42", "-10042", "-42"}


@pytest.mark.asyncio
async def test_private_found_in_dialogs_by_negated_id(client):
    client.dialogs = [dialog(111), dialog(-1234567890, title="secret")]

    peer = await resolve_peer(client, PRIVATE, dialog_limit=500)

    assert peer.title == "secret"
    assert client.dialog_calls == [500]
    assert client.entity_calls == []


@pytest.mark.asyncio
async def test_private_found_in_dialogs_by_marked_dialog_id(client):
    client.dialogs = [dialog(1234567890, dialog_id=-1001234567890, title="channel")]

    peer = await resolve_peer(client, PRIVATE)

    assert peer.title == "channel"
    assert client.entity_calls == []


@pytest.mark.asyncio
async def test_private_falls_back_to_supergroup_id(client):
    client.dialogs = [dialog(1)]
    client.entities[-1001234567890] = SimpleNamespace(id=1234567890, title="sg")

    peer = await resolve_peer(client, PRIVATE)

    assert peer.title == "sg"
    assert client.entity_calls == [-1001234567890]


@pytest.mark.asyncio
async def test_private_cascade_order(client):
    client.entities[1234567890] = SimpleNamespace(id=1234567890, title="raw")

    peer = await resolve_peer(client, PRIVATE)

    assert peer.title == "raw"
    assert client.entity_calls == [-1001234567890, -1234567890, 1234567890]


@pytest.mark.asyncio
async def test_private_dialog_listing_error_moves_on():
    client = FakeClient()

    async def broken(limit=None):
        raise RuntimeError("flood")

    client.get_dialogs = broken
    client.entities[-1234567890] = SimpleNamespace(id=-1234567890, title="neg")

    peer = await resolve_peer(client, PRIVATE)

    assert peer.title == "neg"


@pytest.mark.asyncio
async def test_private_exhausted_lists_preconditions(client):
    with pytest.raises(PeerUnreachable) as exc:
        await resolve_peer(client, PRIVATE)

    err = exc.value
    assert "member" in str(err)
    assert "1234567890" in str(err)
    assert [a.strategy for a in err.attempts] == [
        "dialogs",
        "supergroup id",
        "negative id",
        "raw id",
    ]
    assert all(not a.ok for a in err.attempts)


@pytest.mark.asyncio
async def test_not_connected_tries_nothing():
    client = FakeClient(connected=False)
    client.entities["news"] = SimpleNamespace(id=1)

    with pytest.raises(ClientNotConnected):
        await resolve_peer(client, LinkReference(LinkKind.PUBLIC, "news", 1))

    assert client.entity_calls == []
    assert client.dialog_calls == []


@pytest.mark.asyncio
async def test_public_username(client):
    client.entities["news"] = SimpleNamespace(id=9, username="news")

    peer = await resolve_peer(client, LinkReference(LinkKind.PUBLIC, "news", 1))

    assert peer.username == "news"
    assert client.entity_calls == ["news"]


@pytest.mark.asyncio
async def test_public_username_unreachable_does_not_retry(client):
    with pytest.raises(PeerUnreachable):
        await resolve_peer(client, LinkReference(LinkKind.PUBLIC, "nobody", 1))
    assert client.entity_calls == ["nobody"]


@pytest.mark.asyncio
async def test_public_numeric_retries_with_supergroup_prefix(client):
    client.entities[-100555] = SimpleNamespace(id=555, title="numeric")

    peer = await resolve_peer(client, LinkReference(LinkKind.PUBLIC, "555", 1))

    assert peer.title == "numeric"
    assert client.entity_calls == [555, -100555]


@pytest.mark.asyncio
async def test_public_numeric_unreachable(client):
    with pytest.raises(PeerUnreachable) as exc:
        await resolve_peer(client, LinkReference(LinkKind.PUBLIC, "555", 1))
    assert client.entity_calls == [555, -100555]
    assert len(exc.value.attempts) == 2


@pytest.mark.asyncio
async def test_non_ascii_digits_are_a_username(client):
    with pytest.raises(PeerUnreachable):
        await resolve_peer(client, LinkReference(LinkKind.PUBLIC, "١٢٣", 1))
    assert client.entity_calls == ["١٢٣"]
