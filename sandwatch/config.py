from __future__ import annotations
from typing import Any, Dict
from pathlib import Path
import copy
import sys

import yaml

from .errors import ConfigError

# (name, user, group, features). Every root process must be listed; non-root
# processes are checked only if listed. One name may appear once per user.
_BASELINE = [
    ("udevd", "root", "root", ""),  # creates device nodes and changes owners/perms
    ("frecon", "root", "root", ""),  # launches shells
    ("session_manager", "root", "root", ""),
    ("rsyslogd", "syslog", "syslog", "mnt_ns|restrict_caps"),
    ("systemd-journal", "syslog", "syslog", "mnt_ns|restrict_caps"),
    ("dbus-daemon", "messagebus", "messagebus", "restrict_caps"),
    ("wpa_supplicant", "wpa", "wpa", "restrict_caps|no_new_privs"),
    ("shill", "shill", "shill", "restrict_caps|no_new_privs"),
    ("chapsd", "chaps", "chronos-access", "restrict_caps|no_new_privs"),
    ("cryptohomed", "root", "root", ""),
    ("powerd", "power", "power", "restrict_caps"),
    ("ModemManager", "modem", "modem", "restrict_caps|no_new_privs"),
    ("dhcpcd", "dhcp", "dhcp", "restrict_caps"),
    ("memd", "root", "root", "pid_ns|mnt_ns|no_new_privs|seccomp"),
    ("metrics_daemon", "root", "root", ""),
    ("disks", "cros-disks", "cros-disks", "restrict_caps|no_new_privs"),
    ("update_engine", "root", "root", ""),
    ("bluetoothd", "bluetooth", "bluetooth", "restrict_caps|no_new_privs"),
    ("debugd", "root", "root", "mnt_ns"),
    ("cras", "cras", "cras", "mnt_ns|restrict_caps|no_new_privs"),
    ("tcsd", "tss", "root", "restrict_caps"),
    ("cromo", "cromo", "cromo", ""),
    ("wimax-manager", "root", "root", ""),
    ("mtpd", "mtp", "mtp", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("tlsdated", "tlsdate", "tlsdate", "restrict_caps"),
    ("tlsdated-setter", "root", "root", "no_new_privs|seccomp"),
    ("lid_touchpad_helper", "root", "root", ""),
    ("thermal.sh", "root", "root", ""),
    ("daisydog", "watchdog", "watchdog", "pid_ns|mnt_ns|restrict_caps|no_new_privs"),
    ("permission_broker", "devbroker", "root", "restrict_caps|no_new_privs"),
    ("netfilter-queue", "nfqueue", "nfqueue", "restrict_caps|seccomp"),
    ("anomaly_collector", "root", "root", ""),
    ("attestationd", "attestation", "attestation", "restrict_caps|no_new_privs|seccomp"),
    ("periodic_scheduler", "root", "root", ""),
    ("esif_ufd", "root", "root", ""),
    ("easy_unlock", "easy-unlock", "easy-unlock", ""),
    ("sslh-fork", "sslh", "sslh", "pid_ns|mnt_ns|restrict_caps|seccomp"),
    ("upstart-socket-bridge", "root", "root", ""),
    ("timberslide", "root", "root", ""),
    ("firewalld", "firewall", "firewall", "pid_ns|mnt_ns|restrict_caps|no_new_privs"),
    ("conntrackd", "nfqueue", "nfqueue", "mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("avahi-daemon", "avahi", "avahi", "restrict_caps"),
    ("upstart-udev-bridge", "root", "root", ""),
    ("midis", "midis", "midis", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("bio_crypto_init", "biod", "biod", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("biod", "biod", "biod", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("cros_camera_service", "arc-camera", "arc-camera", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("cros_camera_algo", "arc-camera", "arc-camera", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("arc_camera_service", "arc-camera", "arc-camera", "restrict_caps"),
    ("arc-obb-mounter", "root", "root", "pid_ns|mnt_ns"),
    ("arc-oemcrypto", "arc-oemcrypto", "arc-oemcrypto", "pid_ns|mnt_ns|restrict_caps|no_new_privs|seccomp"),
    ("brcm_patchram_plus", "root", "root", ""),  # some veyron boards
    ("tpm_managerd", "root", "root", ""),
    ("trunksd", "trunks", "trunks", "restrict_caps|no_new_privs|seccomp"),
    ("imageloader", "root", "root", "no_new_privs|seccomp"),
    ("imageloader", "imageloaderd", "imageloaderd", "mnt_ns_no_pivot_root|restrict_caps|no_new_privs|seccomp"),
    ("arc-networkd", "root", "root", "no_new_privs"),
    ("arc-networkd", "arc-networkd", "arc-networkd", "restrict_caps"),

    # root inside the ARC container
    ("app_process", "android-root", "android-root", "pid_ns|mnt_ns"),
    ("debuggerd", "android-root", "android-root", "pid_ns|mnt_ns"),
    ("debuggerd:sig", "android-root", "android-root", "pid_ns|mnt_ns"),
    ("healthd", "android-root", "android-root", "pid_ns|mnt_ns"),
    ("vold", "android-root", "android-root", "pid_ns|mnt_ns"),

    # non-root inside the ARC container
    ("boot_latch", "656360", "656360", "pid_ns|mnt_ns|restrict_caps"),
    ("bugreportd", "657360", "656367", "pid_ns|mnt_ns|restrict_caps"),
    ("logd", "656396", "656396", "pid_ns|mnt_ns|restrict_caps"),
    ("servicemanager", "656360", "656360", "pid_ns|mnt_ns|restrict_caps"),
    ("surfaceflinger", "656360", "656363", "pid_ns|mnt_ns|restrict_caps"),

    # short-lived init/setup scripts that don't spawn daemons
    ("activate_date.service", "root", "root", ""),
    ("chromeos-trim", "root", "root", ""),
    ("crx-import.sh", "root", "root", ""),
    ("dump_vpd_log", "root", "root", ""),
    ("lockbox-cache.sh", "root", "root", ""),
    ("powerd-pre-start.sh", "root", "root", ""),
    ("update_rw_vpd", "root", "root", ""),
]

DEFAULT_CONFIG: Dict[str, Any] = {
    "init_pid": 1,
    "proc_root": "/proc",
    "test_image_mounts": ["/usr/local", "/var/db/pkg", "/var/lib/portage"],
    "skip_seccomp": None,  # None: skip only when the image is an ASan build
    "sanitizer_flags_file": "/etc/session_manager_use_flags.txt",
    "topk": 0,  # 0 = print every violation
    "policy": {
        "baseline": [
            {"name": n, "user": u, "group": g, "features": f} for n, u, g, f in _BASELINE
        ],
        "exclusions": [
            "agetty", "autotest", "autotestd", "autotestd_monitor", "check_ethernet.hook",
            "chrome", "chrome-sandbox", "cras_test_client", "crash_reporter", "endpoint",
            "evemu-device", "flock", "grep", "init", "logger", "login", "nacl_helper",
            "nacl_helper_bootstrap", "nacl_helper_nonsfi", "ping", "ply-image", "ps",
            "recover_duts", "sleep", "sshd", "sudo", "tail", "timeout", "x11vnc",
            "bash", "dash", "sh",
            "python", "python2", "python2.7", "python3", "python3.4", "python3.5",
            "python3.6", "python3.7",
            "minijail0",  # launches other daemons as root to drop privileges
            "minijail-init",
            "(agetty)",  # systemd's serial-getty name before it becomes "agetty"
            "adb",
        ],
        "ignored_ancestors": [
            "kthreadd",  # kernel threads
            "local_test_runner",
            "periodic_scheduler",  # cron scripts
        ],
    },
}

def load_config(path: str | None) -> Dict[str, Any]:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if path:
        try:
            data = yaml.safe_load(Path(path).read_text()) or {}
            if not isinstance(data, dict):
                raise ValueError("top level must be a mapping")
            # shallow merge, then merge policy one level deep
            pol_user = data.get("policy") or {}
            if not isinstance(pol_user, dict):
                raise ValueError("policy must be a mapping")
            cfg.update({k: v for k, v in data.items() if k != "policy"})
            cfg["policy"].update(pol_user)
            print(f"Loaded config from {path}", file=sys.stderr)
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"Warning: Could not load config {path}: {e}", file=sys.stderr)
    check_settings(cfg)
    return cfg

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)

def check_settings(cfg: Dict[str, Any]) -> None:
    """Raise ConfigError for run settings of the wrong type or range.

    The policy section is checked when the Policy is built.
    """
    def bad(key: str) -> ConfigError:
        return ConfigError(f"Invalid value for {key!r}: {cfg.get(key)!r}")

    if not _is_int(cfg.get("init_pid")) or cfg["init_pid"] < 1:
        raise bad("init_pid")
    if not _is_int(cfg.get("topk")) or cfg["topk"] < 0:
        raise bad("topk")
    if not isinstance(cfg.get("proc_root"), str) or not cfg["proc_root"]:
        raise bad("proc_root")
    mounts = cfg.get("test_image_mounts")
    if not isinstance(mounts, list) or not all(isinstance(m, str) for m in mounts):
        raise bad("test_image_mounts")
    if not isinstance(cfg.get("skip_seccomp"), (bool, type(None))):
        raise bad("skip_seccomp")
    if not isinstance(cfg.get("sanitizer_flags_file"), (str, type(None))):
        raise bad("sanitizer_flags_file")
