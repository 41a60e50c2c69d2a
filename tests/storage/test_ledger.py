import json

import pytest

from storage import InMemoryLedger, JsonFileLedger, LedgerEntry, PersistenceError, SQLiteLedger, TxStatus, open_ledger

ACCOUNT = "osmo1trader"


def _entry(txhash="HASH1", **overrides):
    values = dict(
        txhash=txhash,
        timestamp="1700000000",
        pool_id=1721,
        token_in="WLibra",
        token_out="USDC",
        amount=1_000_000,
        swap_type="amount_out",
        min_price=0.5,
    )
    values.update(overrides)
    return LedgerEntry(**values)


@pytest.fixture(params=["memory", "json", "sqlite"])
def ledger(request, tmp_path):
    if request.param == "memory":
        return InMemoryLedger()
    if request.param == "json":
        return JsonFileLedger(tmp_path / "ledger.json")
    return SQLiteLedger(tmp_path / "ledger.db")


@pytest.mark.asyncio
async def test_append_and_list_preserves_order(ledger):
    await ledger.append_entry(ACCOUNT, _entry("HASH1"))
    await ledger.append_entry(ACCOUNT, _entry("HASH2", swap_type="amount_in"))
    await ledger.append_entry("osmo1other", _entry("HASH3"))

    entries = await ledger.list_entries(ACCOUNT)

    assert [e.txhash for e in entries] == ["HASH1", "HASH2"]
    assert entries[0].tx_status == TxStatus.BROADCASTED.value
    assert entries[1].swap_type == "amount_in"
    assert entries[0].status_code is None
    everything = await ledger.load_all()
    assert set(everything) == {ACCOUNT, "osmo1other"}
    await ledger.close()


@pytest.mark.asyncio
async def test_update_moves_entry_to_terminal_state(ledger):
    await ledger.append_entry(ACCOUNT, _entry())

    updated = await ledger.update_entry(
        ACCOUNT, "HASH1",
        tx_status=TxStatus.EXECUTED, status_code=0, raw_log="", gas_used=200_000, tokens_in=500, tokens_out=490,
    )

    assert updated is True
    entry = (await ledger.list_entries(ACCOUNT))[0]
    assert entry.tx_status == "executed"
    assert entry.status_code == 0
    assert entry.gas_used == 200_000
    assert (entry.tokens_in, entry.tokens_out) == (500, 490)
    await ledger.close()


@pytest.mark.asyncio
async def test_terminal_entries_ignore_further_updates(ledger):
    await ledger.append_entry(ACCOUNT, _entry())
    await ledger.update_entry(ACCOUNT, "HASH1", tx_status=TxStatus.TIMEOUT)

    updated = await ledger.update_entry(ACCOUNT, "HASH1", tx_status=TxStatus.EXECUTED, status_code=0)

    assert updated is False
    entry = (await ledger.list_entries(ACCOUNT))[0]
    assert entry.tx_status == "timeout"
    assert entry.status_code is None
    await ledger.close()


@pytest.mark.asyncio
async def test_update_of_unknown_transaction_returns_false(ledger):
    assert await ledger.update_entry(ACCOUNT, "MISSING", tx_status=TxStatus.TIMEOUT) is False
    await ledger.close()


@pytest.mark.asyncio
async def test_duplicate_txhash_is_rejected(ledger):
    await ledger.append_entry(ACCOUNT, _entry())

    with pytest.raises(PersistenceError):
        await ledger.append_entry(ACCOUNT, _entry())
    await ledger.close()


@pytest.mark.asyncio
async def test_json_document_layout(tmp_path):
    path = tmp_path / "nested" / "osmosis_transactions.json"
    ledger = JsonFileLedger(path)

    await ledger.append_entry(ACCOUNT, _entry())

    document = json.loads(path.read_text())
    assert list(document) == [ACCOUNT]
    record = document[ACCOUNT][0]
    assert record["txhash"] == "HASH1"
    assert record["tx_status"] == "broadcasted"
    assert record["tokens_out"] is None
    assert list(tmp_path.joinpath("nested").iterdir()) == [path]


@pytest.mark.asyncio
async def test_json_ledger_survives_reopen(tmp_path):
    path = tmp_path / "ledger.json"
    await JsonFileLedger(path).append_entry(ACCOUNT, _entry())

    entries = await JsonFileLedger(path).list_entries(ACCOUNT)

    assert entries == [_entry()]


@pytest.mark.asyncio
async def test_json_ledger_missing_or_empty_file_is_empty(tmp_path):
    path = tmp_path / "ledger.json"
    assert await JsonFileLedger(path).load_all() == {}
    path.write_text("")
    assert await JsonFileLedger(path).load_all() == {}


@pytest.mark.asyncio
async def test_json_ledger_corrupt_file_raises(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text("{not json")

    with pytest.raises(PersistenceError):
        await JsonFileLedger(path).list_entries(ACCOUNT)


@pytest.mark.asyncio
async def test_json_ledger_ignores_unknown_keys(tmp_path):
    path = tmp_path / "ledger.json"
    record = _entry().to_dict()
    record["note"] = "manually added"
    path.write_text(json.dumps({ACCOUNT: [record]}))

    entries = await JsonFileLedger(path).list_entries(ACCOUNT)

    assert entries[0].txhash == "HASH1"


@pytest.mark.asyncio
@pytest.mark.parametrize("document", [{ACCOUNT: ["garbage"]}, {ACCOUNT: "garbage"}, {ACCOUNT: [{"txhash": "HASH1"}]}])
async def test_json_ledger_malformed_records_raise_persistence_error(tmp_path, document):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps(document))
    ledger = JsonFileLedger(path)

    with pytest.raises(PersistenceError):
        await ledger.list_entries(ACCOUNT)
    with pytest.raises(PersistenceError):
        await ledger.load_all()


@pytest.mark.asyncio
async def test_json_ledger_malformed_records_block_writes(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps({ACCOUNT: ["garbage"]}))
    ledger = JsonFileLedger(path)

    with pytest.raises(PersistenceError):
        await ledger.append_entry(ACCOUNT, _entry())
    with pytest.raises(PersistenceError):
        await ledger.update_entry(ACCOUNT, "HASH1", tx_status=TxStatus.TIMEOUT)
    assert json.loads(path.read_text()) == {ACCOUNT: ["garbage"]}

def test_open_ledger_selects_backend(tmp_path):
    assert isinstance(open_ledger(tmp_path / "a.json"), JsonFileLedger)
    sqlite_ledger = open_ledger(tmp_path / "a.db", backend="sqlite")
    assert isinstance(sqlite_ledger, SQLiteLedger)
    sqlite_ledger._close_sync()
