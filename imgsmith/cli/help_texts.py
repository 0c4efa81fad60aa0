# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# imgsmith/cli/help_texts.py
from __future__ import annotations

# Pure help text used by the argparse epilog.

YAML_EXAMPLE = r"""# imgsmith configuration example (YAML; JSON works too)
#
# Run:
# sudo imgsmith --config image.yaml
#
# Merge multiple configs (later overrides earlier):
# sudo imgsmith --config base.yaml --config arm64.yaml
#
# Required:
# image_url: https://cloud-images.ubuntu.com/jammy/current/jammy-server-cloudimg-amd64.img
# cloudinit_config_path: ./cloud.cfg      # copied to /etc/cloud/cloud.cfg.d/imgsmith.cfg
#
# Guest changes:
# remove_packages: [snapd, lxd-agent-loader]   # dpkg --purge, in order
# extra_packages:                              # dpkg --unpack, in order
#   - ./debs/linux-image-5.15.0-76-generic.deb
#   - ./debs/linux-modules-5.15.0-76-generic.deb
# kernel_version: 5.15.0-76-generic            # empty: skip initramfs + grub.cfg
#
# Layout / output:
# arch: amd64                  # amd64 | arm64
# output_format: vhd           # "" | raw | qcow2 | vhd (fixed, MiB-aligned)
# compress: false              # qcow2 output only
# keep_raw_image: true
#
# Files (relative to workdir):
# workdir: .
# base_image_name: base.qcow2.img   # reused if present, never re-downloaded
# raw_image_name: base.img
#
# Download:
# download_connect_timeout: 30
# download_read_timeout: 300
"""

FEATURE_SUMMARY = """ • Fetch: base image download (skipped when the file exists), streaming with progress\n
 • Decode: qcow2 -> raw working image (qemu-img)\n
 • Guest: loop device with partition scan, root/boot/ESP mounts per architecture\n
 • Customize: cloud-init config, dpkg purge/unpack, initramfs, grub.cfg\n
 • Release: reverse-order unmount, mount dir removal, loop detach on every path\n
 • Outputs: raw, qcow2, fixed VHD\n
"""

EXIT_CODES = """ 0 ok, 1 privilege, 2 missing --config, 3 config, 4 download, 5 conversion,\n
 6 attach, 7 mount dir, 8 mount, 9 customize, 10 unmount, 11 detach,\n
 12 tools missing, 13 cleanup, 130 interrupted\n
"""
