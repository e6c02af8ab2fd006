from __future__ import annotations

import pytest

from dag_neuroevo import cli
from dag_neuroevo.persistence import save_population


@pytest.fixture(autouse=True)
def _keep_sigint_handler(monkeypatch):
    monkeypatch.setattr(cli.signal, "signal", lambda *args: None)


def _args(tmp_path, *extra):
    return [
        "--pop-size", "4",
        "--generations", "2",
        "--timesteps", "5",
        "--workers", "2",
        "--out-root", str(tmp_path),
        *extra,
    ]


def test_main_runs_and_writes_plots(tmp_path, capsys):
    assert cli.main(_args(tmp_path, "--plots", "--fitness", "upright_centered")) == 0

    [run_dir] = list(tmp_path.iterdir())
    assert (run_dir / "champion_graph.json").is_file()
    assert (run_dir / "plots" / "fitness_complexity.png").is_file()
    assert (run_dir / "plots" / "champion_graph.png").is_file()
    assert "Run complete" in capsys.readouterr().out


def test_main_reports_unreadable_population(tmp_path):
    population_dir = tmp_path / "population"
    population_dir.mkdir()
    for i in range(4):
        (population_dir / f"graph-{i}.json").write_text("garbage")

    assert cli.main(_args(tmp_path / "out", "--population-dir", str(population_dir))) == 1


def test_main_refuses_partial_population(tmp_path, io_graph):
    population_dir = tmp_path / "population"
    save_population([io_graph, io_graph], population_dir)

    assert cli.main(_args(tmp_path / "out", "--population-dir", str(population_dir))) == 1
    assert sorted(p.name for p in population_dir.iterdir()) == ["graph-0.json", "graph-1.json"]
