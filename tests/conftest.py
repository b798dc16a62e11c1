import pytest

from fakes import ROOT, FakeSource, company, director, sub


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def group_records():
    """Root with 4 subsidiaries, one grand-subsidiary and 3 directors.

    MARTIN Claire sits on the boards of two subsidiaries.
    """
    claire = director("MARTIN", "Claire", role="Gérant", birth="1975-03-02")
    return [
        company(ROOT, "GOOGLE FRANCE", reps=[director("DUPONT", "Jean")], subs=[
            sub("111111111", "ALPHA TECH"),
            sub("222222222", "BETA INVEST"),
            sub("333333333", "GAMMA CAPITAL"),
            sub("444444444", "DELTA GROUP"),
        ]),
        company("111111111", "ALPHA TECH", reps=[claire], subs=[sub("555555555", "OMEGA SYSTEMS")]),
        company("222222222", "BETA INVEST", reps=[claire]),
        company("333333333", "GAMMA CAPITAL", reps=[director("PETIT", "Louis", birth="1981-07-14")]),
        company("444444444", "DELTA GROUP"),
        company("555555555", "OMEGA SYSTEMS"),
    ]


@pytest.fixture
def group_source(group_records):
    return FakeSource(group_records)
