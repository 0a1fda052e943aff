###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import os
import subprocess
import tempfile
from urllib.parse import quote_plus

from .error_helper import ValidationError
from .logging import get_logger

logger = get_logger(service="sagekit_git_utils")

HTTPS_PREFIX = "https://"


def git_clone_repo(git_config, entry_point, source_dir=None, dependencies=None):
    """
    Clone the repository described by ``git_config`` into a temporary
    directory and resolve ``entry_point``, ``source_dir`` and
    ``dependencies`` against the clone.

    Args:
        git_config (dict): ``repo`` (required), ``branch``, ``commit``,
            ``2FA_enabled``, ``username``, ``password``, ``token``
        entry_point (str): script relative to ``source_dir`` or the repo root
        source_dir (str): directory relative to the repo root
        dependencies (list[str]): paths relative to the repo root

    Returns:
        dict: absolute ``entry_point`` (when no source_dir), ``source_dir``
            and ``dependencies``
    """
    if entry_point is None:
        raise ValidationError("Please provide an entry point.")
    _validate_git_config(git_config)
    dest_dir = tempfile.mkdtemp()
    _run_clone_command(_build_repo_url(git_config), dest_dir)
    _checkout_branch_and_commit(git_config, dest_dir)

    updated_paths = {
        "entry_point": entry_point,
        "source_dir": source_dir,
        "dependencies": dependencies,
    }

    if source_dir:
        if not os.path.isdir(os.path.join(dest_dir, source_dir)):
            raise ValidationError("Source directory does not exist in the repo.")
        if not os.path.isfile(os.path.join(dest_dir, source_dir, entry_point)):
            raise ValidationError("Entry point does not exist in the repo.")
        updated_paths["source_dir"] = os.path.join(dest_dir, source_dir)
    else:
        if not os.path.isfile(os.path.join(dest_dir, entry_point)):
            raise ValidationError("Entry point does not exist in the repo.")
        updated_paths["entry_point"] = os.path.join(dest_dir, entry_point)

    if dependencies is not None:
        updated_paths["dependencies"] = []
        for path in dependencies:
            if not os.path.exists(os.path.join(dest_dir, path)):
                raise ValidationError(f"Dependency {path} does not exist in the repo.")
            updated_paths["dependencies"].append(os.path.join(dest_dir, path))
    return updated_paths


def _validate_git_config(git_config):
    if "repo" not in git_config:
        raise ValidationError("Please provide a repo for git_config.")
    for key, value in git_config.items():
        if key == "2FA_enabled":
            if not isinstance(value, bool):
                raise ValidationError("Please enter a bool type for 2FA_enabled'.")
        elif not isinstance(value, str):
            raise ValidationError(f"'{key}' must be a string.")


def _build_repo_url(git_config):
    repo_url = git_config["repo"]
    if repo_url.startswith("git@"):
        return repo_url
    if not repo_url.startswith(HTTPS_PREFIX):
        raise ValidationError("Invalid Git url provided.")

    if git_config.get("2FA_enabled"):
        if "token" not in git_config:
            raise ValidationError("Please provide a token when 2FA_enabled is True.")
        return _insert_token_to_repo_url(repo_url, git_config["token"])
    if "token" in git_config:
        return _insert_token_to_repo_url(repo_url, git_config["token"])
    if "username" in git_config and "password" in git_config:
        return _insert_username_and_password_to_repo_url(
            repo_url, git_config["username"], git_config["password"]
        )
    return repo_url


def _insert_token_to_repo_url(url, token):
    if url.find(token) == len(HTTPS_PREFIX):
        return url
    return url.replace(HTTPS_PREFIX, f"{HTTPS_PREFIX}{token}@", 1)


def _insert_username_and_password_to_repo_url(url, username, password):
    password = quote_plus(password)
    # urllib parses ' ' as '+', but what we need is '%20' here
    password = password.replace("+", "%20")
    return url.replace(HTTPS_PREFIX, f"{HTTPS_PREFIX}{username}:{password}@", 1)


def _run_clone_command(repo_url, dest_dir):
    env = os.environ.copy()
    if repo_url.startswith(HTTPS_PREFIX):
        # never block on an interactive credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"
    else:
        env["GIT_SSH_COMMAND"] = "ssh -o StrictHostKeyChecking=no -o BatchMode=yes"
    logger.info(f"Cloning git repository into {dest_dir}")
    subprocess.run(["git", "clone", repo_url, dest_dir], env=env, check=True)


def _checkout_branch_and_commit(git_config, dest_dir):
    if "branch" in git_config:
        subprocess.run(["git", "checkout", git_config["branch"]], cwd=str(dest_dir), check=True)
    if "commit" in git_config:
        subprocess.run(["git", "checkout", git_config["commit"]], cwd=str(dest_dir), check=True)
