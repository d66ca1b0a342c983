import pytest

from conftest import CORE_VALUES, CUSTODY_PATH, PARTICIPANTS
from core.errors import DuplicateAssetError, PermissionDenied, ValidationError
from db_models.participant import Affiliation
from api.diamonds import db_manager, registry, transitions
from api.diamonds.models import UNDEFINED, AssetStatus, Diamond

EDGES = transitions.TRANSFER_EDGES


async def _transfer(store, ctx, caller, edge, recipient, role=None, asset_id="AB1234567"):
    loaded = await db_manager.retrieve_diamond(store, asset_id)
    return await transitions.transfer(
        store, ctx(caller), loaded, EDGES[edge], recipient, role or PARTICIPANTS[recipient],
    )


async def _update(store, ctx, caller, attribute, value, asset_id="AB1234567"):
    loaded = await db_manager.retrieve_diamond(store, asset_id)
    return await transitions.update_attribute(store, ctx(caller), loaded, attribute, value)


# --- Creation ---

@pytest.mark.anyio
async def test_create_diamond(store, ctx):
    diamond = await transitions.create(store, ctx("alice"), "AB1234567")

    assert diamond.owner == "alice"
    assert diamond.status is AssetStatus.MINING
    assert diamond.scrapped is False
    assert all(getattr(diamond, name) == UNDEFINED for name in transitions.ATTRIBUTES)

    loaded = await db_manager.retrieve_diamond(store, "AB1234567")
    assert loaded.diamond == diamond
    assert loaded.version == 1
    assert await registry.list_ids(store) == ["AB1234567"]


@pytest.mark.anyio
async def test_create_requires_miner(store, ctx):
    with pytest.raises(PermissionDenied) as exc_info:
        await transitions.create(store, ctx("bob"), "AB1234567")

    assert exc_info.value.failed == ["caller affiliation is distributor, expected miner"]
    assert not await store.exists("AB1234567")
    assert await registry.list_ids(store) == []


@pytest.mark.anyio
async def test_create_rejects_malformed_id(store, ctx):
    with pytest.raises(ValidationError):
        await transitions.create(store, ctx("alice"), "AB12345")
    assert await registry.list_ids(store) == []


@pytest.mark.anyio
async def test_create_duplicate(store, ctx):
    await transitions.create(store, ctx("alice"), "AB1234567")

    with pytest.raises(DuplicateAssetError):
        await transitions.create(store, ctx("mallory"), "AB1234567")

    assert (await db_manager.retrieve_diamond(store, "AB1234567")).diamond.owner == "alice"
    assert await registry.list_ids(store) == ["AB1234567"]


@pytest.mark.anyio
async def test_create_race_loses_on_insert(store, ctx, monkeypatch):
    """A creator that passed the existence check still loses to one that wrote first."""
    await transitions.create(store, ctx("alice"), "AB1234567")

    async def stale_exists(key):
        return False

    monkeypatch.setattr(store, "exists", stale_exists)

    with pytest.raises(DuplicateAssetError):
        await transitions.create(store, ctx("mallory"), "AB1234567")

    assert (await db_manager.retrieve_diamond(store, "AB1234567")).diamond.owner == "alice"
    assert await registry.list_ids(store) == ["AB1234567"]


# --- Custody transfer ---

@pytest.mark.anyio
@pytest.mark.parametrize("step", range(len(CUSTODY_PATH)), ids=[edge for edge, _, _ in CUSTODY_PATH])
async def test_custody_edge(store, ctx, mine, step):
    edge, caller, recipient = CUSTODY_PATH[step]
    before = await mine(steps=step)
    assert before.diamond.owner == caller

    if edge == "distributor_to_dealership":
        for attribute, value in CORE_VALUES.items():
            await _update(store, ctx, "bob", attribute, value)

    after = await _transfer(store, ctx, caller, edge, recipient)

    assert after.owner == recipient
    assert after.status == before.diamond.status + 1
    assert after.status is EDGES[edge].to_status
    stored = await db_manager.retrieve_diamond(store, "AB1234567")
    assert stored.diamond == after


@pytest.mark.anyio
async def test_transfer_rejects_non_owner(store, ctx, mine):
    await mine()

    with pytest.raises(PermissionDenied) as exc_info:
        await _transfer(store, ctx, "mallory", "miner_to_distributor", "bob")

    assert exc_info.value.failed == ["caller mallory is not the owner"]


@pytest.mark.anyio
async def test_transfer_rejects_wrong_recipient_role(store, ctx, mine):
    await mine()

    with pytest.raises(PermissionDenied) as exc_info:
        await _transfer(store, ctx, "alice", "miner_to_distributor", "carol")

    assert exc_info.value.failed == ["recipient affiliation is dealership, expected distributor"]


@pytest.mark.anyio
async def test_transfer_rejects_wrong_status_and_role(store, ctx, mine):
    await mine()

    with pytest.raises(PermissionDenied) as exc_info:
        await _transfer(store, ctx, "alice", "dealership_to_buyer", "dave")

    assert exc_info.value.failed == [
        "status is MINING, expected INTER_DEALING",
        "caller affiliation is miner, expected dealership",
    ]


@pytest.mark.anyio
async def test_transfer_names_every_failed_check(store, ctx, mine):
    before = await mine()

    with pytest.raises(PermissionDenied) as exc_info:
        await _transfer(store, ctx, "bob", "trader_to_cutter", "dave")

    assert len(exc_info.value.failed) == 4
    message = str(exc_info.value)
    assert message.startswith("Permission denied. trader_to_cutter:")
    assert "not the owner" in message

    after = await db_manager.retrieve_diamond(store, "AB1234567")
    assert after == before


@pytest.mark.anyio
async def test_transfer_rejects_blank_recipient(store, ctx, mine):
    await mine()

    with pytest.raises(ValidationError):
        await _transfer(store, ctx, "alice", "miner_to_distributor", "  ", role=Affiliation.DISTRIBUTOR)


@pytest.mark.anyio
async def test_transfer_stores_trimmed_recipient(store, ctx, mine):
    await mine()

    moved = await _transfer(store, ctx, "alice", "miner_to_distributor", " bob\t", role=Affiliation.DISTRIBUTOR)

    assert moved.owner == "bob"
    assert (await db_manager.retrieve_diamond(store, "AB1234567")).diamond.owner == "bob"


GATES = ["status", "owner", "caller_role", "recipient_role", "scrapped"]


@pytest.mark.anyio
@pytest.mark.parametrize("gate", GATES)
@pytest.mark.parametrize("step", range(len(CUSTODY_PATH)), ids=[edge for edge, _, _ in CUSTODY_PATH])
async def test_single_failed_gate_leaves_record_untouched(store, ctx, step, gate):
    """Each edge refuses when exactly one of its checks fails, and writes nothing."""
    name, caller, recipient = CUSTODY_PATH[step]
    edge = EDGES[name]

    # A fully described diamond sitting exactly where this edge expects it
    diamond = Diamond.mined("AB1234567", owner=caller).model_copy(
        update={"status": edge.from_status, **CORE_VALUES}
    )
    caller_role = edge.caller_role
    recipient_role = edge.recipient_role

    if gate == "status":
        diamond = diamond.model_copy(update={"status": edge.to_status})
        expected = f"status is {edge.to_status.name}, expected {edge.from_status.name}"
    elif gate == "owner":
        diamond = diamond.model_copy(update={"owner": "somebody-else"})
        expected = f"caller {caller} is not the owner"
    elif gate == "caller_role":
        caller_role = edge.recipient_role
        expected = f"caller affiliation is {caller_role.value}, expected {edge.caller_role.value}"
    elif gate == "recipient_role":
        recipient_role = edge.caller_role
        expected = f"recipient affiliation is {recipient_role.value}, expected {edge.recipient_role.value}"
    else:
        diamond = diamond.model_copy(update={"scrapped": True})
        expected = "diamond AB1234567 is scrapped"

    await store.insert("AB1234567", diamond.to_bytes())
    await store.commit()
    before = await store.get("AB1234567")

    loaded = await db_manager.retrieve_diamond(store, "AB1234567")
    with pytest.raises(PermissionDenied) as exc_info:
        await transitions.transfer(store, ctx(caller, caller_role), loaded, edge, recipient, recipient_role)

    assert exc_info.value.operation == name
    assert exc_info.value.failed == [expected]

    after = await store.get("AB1234567")
    assert after.value == before.value
    assert after.version == before.version


@pytest.mark.anyio
async def test_distributor_must_describe_before_shipping(store, ctx, mine):
    await mine(steps=1)
    await _update(store, ctx, "bob", "clarity", "VVS1")
    await _update(store, ctx, "bob", "cut", "princess")

    with pytest.raises(ValidationError) as exc_info:
        await _transfer(store, ctx, "bob", "distributor_to_dealership", "carol")

    message = str(exc_info.value)
    assert "not fully defined" in message
    assert "weight" in message and "colour" in message and "symmetry" in message
    assert "clarity" not in message

    stored = await db_manager.retrieve_diamond(store, "AB1234567")
    assert stored.diamond.owner == "bob"
    assert stored.diamond.status is AssetStatus.DISTRIBUTING


@pytest.mark.anyio
async def test_stale_read_is_denied(store, ctx, mine):
    """Two transfers from the same read: the second loses and changes nothing."""
    stale = await mine()

    await transitions.transfer(
        store, ctx("alice"), stale, EDGES["miner_to_distributor"], "bob", Affiliation.DISTRIBUTOR,
    )
    with pytest.raises(PermissionDenied) as exc_info:
        await transitions.transfer(
            store, ctx("alice"), stale, EDGES["miner_to_distributor"], "trent", Affiliation.DISTRIBUTOR,
        )

    assert "changed since it was read" in str(exc_info.value)
    stored = await db_manager.retrieve_diamond(store, "AB1234567")
    assert stored.diamond.owner == "bob"
    assert stored.version == 2


def test_unknown_edge():
    with pytest.raises(ValidationError):
        transitions.get_edge("miner_to_customer")


# --- Attribute updates ---

@pytest.mark.anyio
async def test_distributor_describes_diamond(store, ctx, mine):
    await mine(steps=1)

    for attribute in transitions.ATTRIBUTES:
        value = CORE_VALUES.get(attribute, f"{attribute}-value")
        updated = await _update(store, ctx, "bob", attribute, value)
        assert getattr(updated, attribute) == value

    stored = (await db_manager.retrieve_diamond(store, "AB1234567")).diamond
    assert stored.weight == CORE_VALUES["weight"]
    assert stored.status is AssetStatus.DISTRIBUTING
    assert stored.owner == "bob"


@pytest.mark.anyio
async def test_weight_is_write_once(store, ctx, mine):
    await mine(steps=1)
    await _update(store, ctx, "bob", "weight", "000000000001050")

    with pytest.raises(PermissionDenied) as exc_info:
        await _update(store, ctx, "bob", "weight", "000000000002000")

    assert exc_info.value.failed == ["weight is already set and cannot change"]
    assert (await db_manager.retrieve_diamond(store, "AB1234567")).diamond.weight == "000000000001050"


@pytest.mark.anyio
async def test_weight_format(store, ctx, mine):
    await mine(steps=1)

    with pytest.raises(ValidationError):
        await _update(store, ctx, "bob", "weight", "1.05ct")
    assert (await db_manager.retrieve_diamond(store, "AB1234567")).diamond.weight == UNDEFINED


@pytest.mark.anyio
async def test_only_owning_distributor_updates(store, ctx, mine):
    await mine(steps=1)

    with pytest.raises(PermissionDenied) as exc_info:
        await _update(store, ctx, "alice", "clarity", "VVS1")
    assert exc_info.value.failed == [
        "caller alice is not the owner",
        "caller affiliation is miner, expected distributor",
    ]

    with pytest.raises(PermissionDenied) as exc_info:
        await _update(store, ctx, "trent", "colour", "D")
    assert exc_info.value.failed == ["caller trent is not the owner"]


@pytest.mark.anyio
async def test_status_scoped_attributes_need_distributing(store, ctx, mine):
    await mine(steps=2)

    with pytest.raises(PermissionDenied) as exc_info:
        await _update(store, ctx, "carol", "clarity", "SI1")
    assert "status is INTER_DEALING, expected DISTRIBUTING" in exc_info.value.failed
    assert "caller affiliation is dealership, expected distributor" in exc_info.value.failed

    # Owner-scoped attributes skip the status check
    with pytest.raises(PermissionDenied) as exc_info:
        await _update(store, ctx, "carol", "polish", "good")
    assert exc_info.value.failed == ["caller affiliation is dealership, expected distributor"]


@pytest.mark.anyio
async def test_unknown_attribute(store, ctx, mine):
    loaded = await mine(steps=1)

    with pytest.raises(ValidationError):
        await transitions.update_attribute(store, ctx("bob"), loaded, "owner", "mallory")


# --- Scrapping ---

@pytest.mark.anyio
async def test_scrap_is_terminal(store, ctx, mine):
    await mine(steps=len(CUSTODY_PATH))

    loaded = await db_manager.retrieve_diamond(store, "AB1234567")
    scrapped = await transitions.scrap(store, ctx("ivan"), loaded)
    assert scrapped.scrapped is True
    assert scrapped.status is AssetStatus.BEING_SCRAPPED

    final = await db_manager.retrieve_diamond(store, "AB1234567")

    with pytest.raises(PermissionDenied):
        await transitions.scrap(store, ctx("ivan"), final)
    with pytest.raises(PermissionDenied):
        await transitions.update_attribute(store, ctx("ivan"), final, "location", "smelter")
    with pytest.raises(PermissionDenied):
        await transitions.transfer(
            store, ctx("ivan"), final, EDGES["customer_to_scrap_merchant"], "ivan", Affiliation.SCRAP_MERCHANT,
        )

    assert await db_manager.retrieve_diamond(store, "AB1234567") == final


@pytest.mark.anyio
async def test_scrap_requires_scrap_merchant_in_possession(store, ctx, mine):
    loaded = await mine(steps=len(CUSTODY_PATH) - 1)

    with pytest.raises(PermissionDenied) as exc_info:
        await transitions.scrap(store, ctx("heidi"), loaded)

    assert exc_info.value.failed == [
        "status is PURCHASING, expected BEING_SCRAPPED",
        "caller affiliation is customer, expected scrap_merchant",
    ]
    assert (await db_manager.retrieve_diamond(store, "AB1234567")).diamond.scrapped is False
