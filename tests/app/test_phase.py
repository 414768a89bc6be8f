from bakerst.app.phase import ItemState, Phase, StatusRow


def test_phase_index_is_sequential():
    assert [p.index for p in Phase] == list(range(8))
    assert Phase.PREFLIGHT.index == 0
    assert Phase.COMPLETE.index == 7


def test_complete_has_no_next():
    assert Phase.COMPLETE.next() is None
    assert Phase.HEALTH.next() is Phase.COMPLETE


def test_labels():
    assert Phase.PULL.label == "Pull Images"
    assert Phase.HEALTH.label == "Health Check"


def test_status_row_terminal_states():
    assert not StatusRow("a").terminal
    assert not StatusRow("a", ItemState.IN_PROGRESS).terminal
    for state in (ItemState.DONE, ItemState.FAILED, ItemState.SKIPPED):
        assert StatusRow("a", state).terminal
