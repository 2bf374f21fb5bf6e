# batesstamp/config.py
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .bates import BatesNumber

NUMBERING_MODES = ("per-file", "continuous")


@dataclass(frozen=True)
class EndorserConfig:
    """Drawing options handed to every Endorser; immutable so it can cross a fork as-is."""
    label: str = "CONFIDENTIAL"
    font_family: str = "helvetica"
    pointsize: int = 10
    font_weight: str = "bold"          # "normal" or "bold"
    label_position: str = "south_west"
    bates_position: str = "south_east"
    page_writer: str = "multi"         # "multi" keeps one file, "single" writes <stem>_<n><ext>
    margin: int = 10


@dataclass
class RunConfig:
    """Configuration for a batesstamp run over a directory."""
    input_dir: Path
    output_dir: Path
    error_log_path: Optional[Path] = None

    pattern: str = "*.tif"
    num_workers: int = 2

    prefix: str = "TEST_"
    padding: int = 8
    start_number: int = 1
    numbering: str = "per-file"        # or "continuous" across the whole file set

    receive_timeout: Optional[float] = None
    poll_interval: float = 0.2
    stop_on_error: bool = True
    show_progress: bool = True

    endorser: EndorserConfig = field(default_factory=EndorserConfig)

    log_queue: Optional[Any] = None

    def __post_init__(self):
        if self.num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {self.num_workers}")
        if self.numbering not in NUMBERING_MODES:
            raise ValueError(f"Unknown numbering mode, '{self.numbering}'. Supported modes, {list(NUMBERING_MODES)}")
        # Fails early with InvalidSequenceValue on a bad start/padding
        self.starting_bates()

    def starting_bates(self) -> BatesNumber:
        return BatesNumber(self.prefix, self.start_number, self.padding)

    def to_dict(self) -> Dict[str, Any]:
        """Converts config to a plain dictionary (paths as strings, no log queue)."""
        d = asdict(self)
        d.pop("log_queue", None)
        for key, value in d.items():
            if isinstance(value, Path):
                d[key] = str(value)
        return d

    @classmethod
    def from_dict(cls, config_dict: dict):
        d = dict(config_dict)

        # normalize path-like fields
        for key in ["input_dir", "output_dir", "error_log_path"]:
            if key in d and isinstance(d[key], str):
                d[key] = Path(d[key])

        # allow explicit None to mean use default
        for key in ["num_workers", "pattern", "prefix", "padding", "start_number", "numbering", "endorser"]:
            if d.get(key) is None:
                d.pop(key, None)

        endorser = d.get("endorser")
        if isinstance(endorser, dict):
            d["endorser"] = EndorserConfig(**{k: v for k, v in endorser.items() if v is not None})

        return cls(**d)
