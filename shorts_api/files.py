# file: shorts_api/files.py
"""Working-directory and output-artifact layout. Cleanup helpers log, they never raise."""

import logging
import os
import shutil

logger = logging.getLogger(__name__)


def get_job_dir(job_id: str, uploads_dir: str) -> str:
    return os.path.join(uploads_dir, job_id)


def get_output_path(job_id: str, outputs_dir: str) -> str:
    return os.path.join(outputs_dir, f"{job_id}.mp4")


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def cleanup_job_files(job_id: str, uploads_dir: str) -> bool:
    """Removes the job's working directory. Returns False if removal failed."""
    job_dir = get_job_dir(job_id, uploads_dir)
    if not os.path.exists(job_dir):
        return True
    try:
        shutil.rmtree(job_dir)
        logger.info(f"Removed working directory: {job_dir}")
        return True
    except OSError as err:
        logger.error(f"Working directory cleanup error for job {job_id}: {err}")
        return False


def delete_file(path: str) -> None:
    if path and os.path.exists(path):
        try:
            os.remove(path)
            logger.info(f"Deleted file: {path}")
        except OSError as err:
            logger.error(f"Failed to delete file {path}: {err}")
