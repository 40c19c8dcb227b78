# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# hyper2rhv/cli/help_texts.py
from __future__ import annotations

# Pure help text for the argparse epilog; keep it copy/paste runnable.

YAML_EXAMPLE = r"""# hyper2rhv configuration example (YAML)
#
# Run:
#   hyper2rhv --config rhv.yaml --cmd check-options
#
# Merge multiple configs (later overrides earlier):
#   hyper2rhv --config site.yaml --config vm.yaml --cmd preflight
#
# Every key can also be given on the command line, which wins over YAML.

output_conn: https://engine.example.com/ovirt-engine/api
output_password: /etc/hyper2rhv/engine.pass   # file containing the password
output_storage: data-domain-1
output_format: qcow2                          # raw | qcow2
output_name: web01-migrated

output_options:                               # same as repeated -oo
  - rhv-cafile=/etc/pki/ovirt-engine/ca.pem
  - rhv-cluster=Production
  - rhv-verifypeer=true

helper_dir: /usr/libexec/hyper2rhv            # rhv-upload-*.py programs
python: python3
nbdkit: nbdkit
"""

COMMANDS_SUMMARY = r"""Commands (--cmd):
  preflight       check python, the oVirt SDK, nbdkit and the helper programs
  query-options   list the -oo output options
  check-options   validate -oc/-op/-os/-of/-on/-oo and print them as JSON

Exit codes:
  0 ok, 1 unexpected error, 2 bad configuration, 3 rejected by the engine,
  4 local process failure, 5 environment check failed, 130 interrupted
"""
