"""Bash framework shared by every payload.

Every script sent to a target starts with `COMMON_FUNCTIONS`. State
markers are `key=value` files under `GPUSTACK_STATE_DIR`.

Exit codes:
    0 success, 1 general error, 2 invalid input, 3 network error
    (retryable), 4 missing dependency, 5 verification failed,
    10 driver, 11 runtime, 12 toolkit, 13 kubernetes.
"""

from __future__ import annotations

import math
import shlex

from gpustack.core.manifest import DEFAULT_STATE_DIR, RetrySettings

EXIT_NETWORK = 3
EXIT_DEPENDENCY = 4
EXIT_VERIFY = 5
EXIT_DRIVER = 10
EXIT_RUNTIME = 11
EXIT_TOOLKIT = 12
EXIT_KUBERNETES = 13

COMMON_FUNCTIONS = r"""
export DEBIAN_FRONTEND=noninteractive
export GPUSTACK_LOG_FORMAT="${GPUSTACK_LOG_FORMAT:-text}"

gpustack_log() {
    local level="$1"
    local component="$2"
    local message="$3"
    local timestamp
    timestamp=$(date -Iseconds)

    if [[ "$GPUSTACK_LOG_FORMAT" == "json" ]]; then
        local escaped format
        escaped=$(printf '%s' "$message" | sed 's/\\/\\\\/g; s/"/\\"/g')
        format='{"timestamp":"%s","level":"%s",'
        format+='"component":"%s","event":"%s"}\n'
        printf "$format" \
            "$timestamp" "$level" "$component" "$escaped" >&2
    else
        printf '[%s] [%-5s] [%s] %s\n' \
            "$timestamp" "$level" "$component" "$message" >&2
    fi
}

gpustack_error() {
    local code="$1"
    local component="$2"
    local message="$3"
    local remediation="${4:-}"

    gpustack_log "ERROR" "$component" "$message"
    if [[ -n "$remediation" ]]; then
        gpustack_log "INFO" "$component" "Remediation: $remediation"
    fi
    exit "$code"
}

gpustack_progress() {
    gpustack_log "INFO" "$1" "[$2/$3] $4"
}

# Waits GPUSTACK_RETRY_DELAY seconds between attempts, one more step
# each time when GPUSTACK_RETRY_BACKOFF is linear. Exits 3 when exhausted.
gpustack_retry() {
    local max_attempts="$1"
    local component="$2"
    shift 2

    local attempt=1
    local step="${GPUSTACK_RETRY_DELAY:-5}"
    local delay="$step"
    while true; do
        if "$@"; then
            return 0
        fi
        if [[ $attempt -ge $max_attempts ]]; then
            gpustack_log "ERROR" "$component" \
                "Failed after ${max_attempts} attempts: $*"
            return 3
        fi
        gpustack_log "WARN" "$component" \
            "Attempt ${attempt}/${max_attempts} failed, retrying in ${delay}s"
        sleep "$delay"
        attempt=$((attempt + 1))
        if [[ "${GPUSTACK_RETRY_BACKOFF:-fixed}" == "linear" ]]; then
            delay=$((delay + step))
        fi
    done
}

gpustack_require_command() {
    if ! command -v "$1" &>/dev/null; then
        gpustack_error 4 "$2" "Required command not found: $1" \
            "Ensure $1 is installed and in PATH"
    fi
}

gpustack_apt_install() {
    local component="$1"
    shift
    gpustack_retry 5 "$component" sudo apt-get -o Acquire::Retries=3 update
    gpustack_retry 5 "$component" sudo apt-get install -y \
        --allow-downgrades --no-install-recommends "$@"
}

gpustack_marker_get() {
    local state_file="${GPUSTACK_STATE_DIR}/$1.state"
    if [[ -f "$state_file" ]]; then
        sed -n "s/^$2=//p" "$state_file" | head -1
    fi
}

gpustack_mark() {
    local component="$1"
    local status="$2"
    local version="${3:-}"

    sudo mkdir -p "$GPUSTACK_STATE_DIR"
    printf 'status=%s\nversion=%s\ninstalled_at=%s\n' \
        "$status" "$version" "$(date -Iseconds)" | \
        sudo tee "${GPUSTACK_STATE_DIR}/${component}.state" > /dev/null
}

gpustack_write_provenance() {
    local path="$1"
    shift
    local body="" key value
    while [[ $# -gt 1 ]]; do
        key="$1"
        value="$2"
        shift 2
        body="${body}  \"${key}\": \"${value}\",\n"
    done
    sudo mkdir -p "$(dirname "$path")"
    printf '{\n%b  "installed_at": "%s"\n}\n' "$body" "$(date -Iseconds)" | \
        sudo tee "$path" > /dev/null
}

gpustack_provenance_get() {
    if [[ -f "$1" ]] && command -v jq &>/dev/null; then
        jq -r ".$2 // empty" "$1"
    fi
}

gpustack_check_github_repo() {
    if [[ "$1" != https://github.com/* && "$1" != git@github.com:* ]]; then
        gpustack_error 2 "$2" "Repository must be a GitHub URL: $1"
    fi
}

"""

CONTRACT_FUNCTION = r"""
gpustack_contract() {
    local component="$1"
    local version="$2"
    local requires_reboot="$3"
    local installed marker rc

    installed=$(gpustack_installed_version 2>/dev/null || true)
    if [[ -n "$installed" ]] && \
        { [[ -z "$version" ]] || [[ "$installed" == "$version" ]]; }; then
        if ( gpustack_verify ) &>/dev/null; then
            gpustack_mark "$component" installed "$installed"
            gpustack_log "INFO" "$component" "Already installed: ${installed}"
            return 0
        fi
    fi

    marker=$(gpustack_marker_get "$component" status)
    if [[ "$marker" == "pending_reboot" ]]; then
        gpustack_log "WARN" "$component" \
            "Reboot pending, a manual or external reboot is required"
        return 0
    fi

    gpustack_log "INFO" "$component" "Installing ${version:-latest}"
    set +e
    ( set -e; gpustack_install )
    rc=$?
    set -e
    if [[ $rc -ne 0 ]]; then
        return "$rc"
    fi

    if [[ "$requires_reboot" == "true" ]]; then
        gpustack_mark "$component" pending_reboot "$version"
        gpustack_log "INFO" "$component" "Rebooting to finish the install"
        ( gpustack_reboot ) || true
        return 0
    fi

    if ! ( gpustack_verify ); then
        gpustack_log "ERROR" "$component" "Verification failed after install"
        return 5
    fi
    installed=$(gpustack_installed_version 2>/dev/null || true)
    gpustack_mark "$component" installed "${installed:-$version}"
    gpustack_log "INFO" "$component" "Installed ${installed:-$version}"
}
"""


def prelude(
    state_dir: str = DEFAULT_STATE_DIR,
    retry: RetrySettings | None = None,
) -> str:
    """Header for every script run on a target.

    The retry delay is rounded up to whole seconds for bash arithmetic.
    """
    retry = retry or RetrySettings()
    return (
        "#!/usr/bin/env bash\n"
        "set -euo pipefail\n"
        f"export GPUSTACK_STATE_DIR={shlex.quote(state_dir)}\n"
        f"export GPUSTACK_RETRY_DELAY={math.ceil(max(retry.delay, 0))}\n"
        f"export GPUSTACK_RETRY_BACKOFF={retry.backoff}\n"
        f"{COMMON_FUNCTIONS}"
    )


def assign(**variables: object) -> str:
    """Render shell variable assignments, one per line."""
    lines = []
    for name, value in variables.items():
        if value is None:
            value = ""
        elif isinstance(value, bool):
            value = "true" if value else "false"
        lines.append(f"{name.upper()}={shlex.quote(str(value))}")
    return "\n".join(lines) + "\n"
