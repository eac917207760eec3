"""Tests for loading run configurations."""

import json

import pytest
import yaml

from foldkin.config import load_run_config, parse_run_config
from foldkin.errors import ConfigurationError, ParameterError

FULL_DOC = {
    "sequence": "GGGAAACCCAGGGAAACCC",
    "structure": None,
    "energy_parameters": "params/custom.yaml",
    "simulation": {"rule": "kawasaki", "t_max": 100.0, "seed": 7, "allow_shift": True},
    "transcription": {"start_length": 9, "rate": 2.0},
    "ensemble": {"size": 8, "processes": 2},
    "output": {"t_ext": 1.0, "t_end": 100.0, "t_lin": 4, "t_log": 2},
}


class TestLoadRunConfig:
    """Tests for load_run_config()."""

    def test_yaml_document(self, tmp_path) -> None:
        """Every section is parsed; relative paths use the document's directory."""
        (tmp_path / "params").mkdir()
        (tmp_path / "params" / "custom.yaml").write_text(yaml.safe_dump({"name": "custom"}))
        path = tmp_path / "run.yaml"
        path.write_text(yaml.safe_dump(FULL_DOC))

        config = load_run_config(path)
        assert config.sequence == "GGGAAACCCAGGGAAACCC"
        assert config.simulation.rule == "kawasaki"
        assert config.simulation.seed == 7
        assert config.simulation.allow_shift is True
        assert config.params.name == "custom"
        assert config.cotranscriptional
        assert config.start_length == 9
        assert config.schedule.total_residues == 10
        assert config.ensemble_size == 8
        assert config.processes == 2
        assert config.output_times.tolist() == pytest.approx([0, 0.25, 0.5, 0.75, 1.0, 10.0, 100.0])

    def test_minimal_json(self, tmp_path) -> None:
        """Only the sequence is required."""
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"sequence": "GGGAAACCC"}))
        config = load_run_config(path)
        assert config.simulation.rule == "metropolis"
        assert config.params is None
        assert config.schedule is None
        assert config.ensemble_size == 1
        assert config.output_times is None

    def test_malformed(self, tmp_path) -> None:
        """Undecodable documents raise ConfigurationError."""
        path = tmp_path / "run.json"
        path.write_text("{")
        with pytest.raises(ConfigurationError, match="Cannot parse"):
            load_run_config(path)

    def test_empty(self, tmp_path) -> None:
        """Empty documents are rejected."""
        path = tmp_path / "run.yaml"
        path.write_text("")
        with pytest.raises(ConfigurationError, match="empty"):
            load_run_config(path)

    def test_bad_parameter_file(self, tmp_path) -> None:
        """Errors in the referenced parameter file surface as ParameterError."""
        (tmp_path / "p.json").write_text(json.dumps({"bogus": 1}))
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"sequence": "GGGAAACCC", "energy_parameters": "p.json"}))
        with pytest.raises(ParameterError):
            load_run_config(path)


class TestParseRunConfig:
    """Tests for validation of decoded documents."""

    @pytest.mark.parametrize(
        "doc,match",
        [
            ({}, "requires a sequence"),
            ({"sequence": "GGGAAACCC", "colour": "red"}, "Unknown key"),
            ({"sequence": "GGGAAACCC", "simulation": {"temp": 37}}, "Unknown key"),
            ({"sequence": "GGGAAACCC", "simulation": {"t_max": -1}}, "t_max"),
            ({"sequence": "GGGAAACCC", "ensemble": {"size": 0}}, "Ensemble size"),
            ({"sequence": "GGGAAACCC", "output": {"t_ext": 1.0}}, "missing"),
            ({"sequence": "GGGAAACCC", "transcription": {"rate": 1.0}}, "start_length"),
            (
                {"sequence": "GGGAAACCC", "transcription": {"start_length": 3}},
                "either events or rate",
            ),
            (
                {
                    "sequence": "GGGAAACCC",
                    "transcription": {"start_length": 3, "rate": 1.0, "events": [[1.0, 1]]},
                },
                "not both",
            ),
        ],
    )
    def test_invalid(self, doc, match) -> None:
        """Invalid documents raise ConfigurationError naming the problem."""
        with pytest.raises(ConfigurationError, match=match):
            parse_run_config(doc)

    def test_explicit_events(self) -> None:
        """Transcription events may be listed explicitly."""
        config = parse_run_config(
            {
                "sequence": "GGGAAACCC",
                "transcription": {"start_length": 5, "events": [[2.0, 2], [1.0, 2]]},
            }
        )
        assert [(e.time, e.n_residues) for e in config.schedule] == [(1.0, 2), (2.0, 2)]
