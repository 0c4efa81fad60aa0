# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/config/config_loader.py
from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from ..core.exceptions import ConfigError, ConversionError
from ..converters.qemu_converter import ImageFormat
from ..storage.layout import DEFAULT_ARCH, layout_for


@dataclass(frozen=True)
class CustomizationSpec:
    """Desired guest mutations. Immutable once loaded."""
    cloud_init_config: Path
    extra_packages: Tuple[Path, ...] = ()
    remove_packages: Tuple[str, ...] = ()
    kernel_version: str = ""


@dataclass(frozen=True)
class Settings:
    image_url: str
    customization: CustomizationSpec
    output_format: str = ""
    arch: str = DEFAULT_ARCH
    workdir: Path = Path(".")
    base_image_name: str = "base.qcow2.img"
    raw_image_name: str = "base.img"
    keep_raw_image: bool = True
    compress: bool = False
    download_timeout: Tuple[float, float] = field(default=(30.0, 300.0))

    @property
    def base_image(self) -> Path:
        return self.workdir / self.base_image_name

    @property
    def raw_image(self) -> Path:
        return self.workdir / self.raw_image_name

    @property
    def output_image(self) -> Optional[Path]:
        fmt = self.target_format
        if fmt is None:
            return None
        return self.raw_image.with_suffix(fmt.suffix)

    @property
    def target_format(self) -> Optional[ImageFormat]:
        """Format to re-encode into, or None when the raw image is the output."""
        if not self.output_format:
            return None
        fmt = ImageFormat.parse(self.output_format)
        return None if fmt is ImageFormat.RAW else fmt


# Keys understood at the top level of a config document.
KNOWN_KEYS = (
    "cloudinit_config_path",
    "image_url",
    "extra_packages",
    "remove_packages",
    "kernel_version",
    "output_format",
    "arch",
    "workdir",
    "base_image_name",
    "raw_image_name",
    "keep_raw_image",
    "compress",
    "download_connect_timeout",
    "download_read_timeout",
)


def _require(v: Any) -> bool:
    """True if v is meaningfully present (empty/whitespace-only strings count as missing)."""
    if v is None:
        return False
    if isinstance(v, str):
        return v.strip() != ""
    return True


def _str_list(conf: Dict[str, Any], key: str) -> List[str]:
    v = conf.get(key)
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, (list, tuple)) or not all(isinstance(x, str) for x in v):
        raise ConfigError(msg=f"`{key}` must be a list of strings", context={"key": key})
    return [x.strip() for x in v if x.strip()]


def _bool(conf: Dict[str, Any], key: str, default: bool) -> bool:
    v = conf.get(key)
    if v is None:
        return default
    if not isinstance(v, bool):
        raise ConfigError(msg=f"`{key}` must be true or false", context={"key": key})
    return v


def _seconds(conf: Dict[str, Any], key: str, default: float) -> float:
    v = conf.get(key)
    if v is None:
        return default
    if isinstance(v, bool) or not isinstance(v, (int, float)) or v <= 0:
        raise ConfigError(msg=f"`{key}` must be a positive number of seconds", context={"key": key})
    return float(v)


def _check_distinct_images(s: Settings) -> None:
    """Base, raw and output images must never share a path."""
    named = [("base_image", s.base_image), ("raw_image", s.raw_image)]
    if s.output_image is not None:
        named.append(("output_image", s.output_image))
    seen: Dict[Path, str] = {}
    for name, path in named:
        if path in seen:
            raise ConfigError(
                msg=f"{seen[path]} and {name} both resolve to {path}",
                context={"path": str(path), "keys": [seen[path], name]},
            )
        seen[path] = name


class Config:
    @staticmethod
    def load_one(logger: Any, path: Path) -> Dict[str, Any]:
        """
        Load one YAML or JSON document (JSON is a subset of YAML).
        The top level must be a mapping.
        """
        path = Path(path).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(msg=f"Cannot read config {path}: {e}", cause=e, context={"path": str(path)}) from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(msg=f"Cannot parse config {path}: {e}", cause=e, context={"path": str(path)}) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(msg=f"Config {path} must contain a mapping at top level", context={"path": str(path)})

        unknown = sorted(k for k in data if k not in KNOWN_KEYS)
        if unknown:
            logger.warning(f"Ignoring unknown config keys in {path}: {', '.join(unknown)}")

        logger.debug(f"Loaded config: {path}")
        return data

    @staticmethod
    def merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(base)
        out.update(override)
        return out

    @staticmethod
    def load_many(logger: Any, paths: Sequence[Path]) -> Dict[str, Any]:
        conf: Dict[str, Any] = {}
        for p in paths:
            conf = Config.merge(conf, Config.load_one(logger, Path(p)))
        return conf

    @staticmethod
    def apply_as_defaults(logger: Any, parser: argparse.ArgumentParser, conf: Dict[str, Any]) -> None:
        """Config values become argparse defaults, so explicit CLI flags still win."""
        dests = {a.dest for a in parser._actions}
        defaults = {k: v for k, v in conf.items() if k in dests}
        if defaults:
            logger.debug(f"Config defaults applied to CLI: {', '.join(sorted(defaults))}")
            parser.set_defaults(**defaults)

    @staticmethod
    def build_settings(conf: Dict[str, Any], *, base_dir: Optional[Path] = None) -> Settings:
        """
        Validate a merged config mapping into Settings.
        Relative paths resolve against `base_dir` (default: the current directory).
        """
        base_dir = Path(base_dir) if base_dir else Path(".")

        def _path(v: str) -> Path:
            p = Path(v).expanduser()
            return p if p.is_absolute() else base_dir / p

        image_url = conf.get("image_url")
        if not _require(image_url):
            raise ConfigError(msg="image_url missing", context={"key": "image_url"})
        cloud_init = conf.get("cloudinit_config_path")
        if not _require(cloud_init):
            raise ConfigError(msg="cloudinit_config_path missing", context={"key": "cloudinit_config_path"})
        if not isinstance(image_url, str) or not isinstance(cloud_init, str):
            raise ConfigError(msg="image_url and cloudinit_config_path must be strings")

        kernel_version = conf.get("kernel_version") or ""
        if not isinstance(kernel_version, str):
            raise ConfigError(msg="`kernel_version` must be a string", context={"key": "kernel_version"})

        output_format = conf.get("output_format") or ""
        if not isinstance(output_format, str):
            raise ConfigError(msg="`output_format` must be a string", context={"key": "output_format"})
        if output_format:
            try:
                ImageFormat.parse(output_format)
            except ConversionError as e:
                raise ConfigError(msg=e.msg, context={"key": "output_format"}) from None

        arch = conf.get("arch") or DEFAULT_ARCH
        if not isinstance(arch, str):
            raise ConfigError(msg="`arch` must be a string", context={"key": "arch"})
        arch = layout_for(arch).arch

        spec = CustomizationSpec(
            cloud_init_config=_path(cloud_init.strip()),
            extra_packages=tuple(_path(p) for p in _str_list(conf, "extra_packages")),
            remove_packages=tuple(_str_list(conf, "remove_packages")),
            kernel_version=kernel_version.strip(),
        )

        workdir = conf.get("workdir") or "."
        settings = Settings(
            image_url=image_url.strip(),
            customization=spec,
            output_format=output_format.strip().lower(),
            arch=arch,
            workdir=_path(str(workdir)),
            base_image_name=str(conf.get("base_image_name") or "base.qcow2.img"),
            raw_image_name=str(conf.get("raw_image_name") or "base.img"),
            keep_raw_image=_bool(conf, "keep_raw_image", True),
            compress=_bool(conf, "compress", False),
            download_timeout=(
                _seconds(conf, "download_connect_timeout", 30.0),
                _seconds(conf, "download_read_timeout", 300.0),
            ),
        )
        _check_distinct_images(settings)
        return settings
