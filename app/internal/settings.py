import os


class Settings:
    jobs_root = os.getenv("JOBS_ROOT", "/tmp/jobnode/jobs")
    archive_root = os.getenv("ARCHIVE_ROOT", "/tmp/jobnode/archives")
    attachments_root = os.getenv(
        "ATTACHMENTS_ROOT", "/tmp/jobnode/attachments"
    )
    memory_capacity = int(os.getenv("NODE_MEMORY_CAPACITY_MB", 30720))
    memory_ceiling = int(os.getenv("JOB_MEMORY_CEILING_MB", 10240))
    memory_default = int(os.getenv("JOB_MEMORY_DEFAULT_MB", 1536))
    poll_interval = float(os.getenv("POLL_INTERVAL_SECONDS", 5))
    kill_grace = float(os.getenv("KILL_GRACE_SECONDS", 10))
    archive_enabled = os.getenv("ARCHIVE_ENABLED", "true")
    delete_dependencies = os.getenv("DELETE_APPLICATION_DEPENDENCIES", "true")
    match_policy = os.getenv("MATCH_POLICY", "RANDOM")
    tag_store = os.getenv("TAG_STORE", "FILE")
    tag_store_file = os.getenv("TAG_STORE_FILE", "tagstore.json")
    host = os.getenv("HOST", "localhost")
    port = int(os.getenv("PORT", "80"))
    root_path = os.getenv("ROOT_PATH", "/")
    log_level = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def read_environments(cls):
        cls.jobs_root = os.getenv("JOBS_ROOT", "/tmp/jobnode/jobs")
        cls.archive_root = os.getenv("ARCHIVE_ROOT", "/tmp/jobnode/archives")
        cls.attachments_root = os.getenv(
            "ATTACHMENTS_ROOT", "/tmp/jobnode/attachments"
        )
        cls.memory_capacity = int(os.getenv("NODE_MEMORY_CAPACITY_MB", 30720))
        cls.memory_ceiling = int(os.getenv("JOB_MEMORY_CEILING_MB", 10240))
        cls.memory_default = int(os.getenv("JOB_MEMORY_DEFAULT_MB", 1536))
        cls.poll_interval = float(os.getenv("POLL_INTERVAL_SECONDS", 5))
        cls.kill_grace = float(os.getenv("KILL_GRACE_SECONDS", 10))
        cls.archive_enabled = os.getenv("ARCHIVE_ENABLED", "true")
        cls.delete_dependencies = os.getenv(
            "DELETE_APPLICATION_DEPENDENCIES", "true"
        )
        cls.match_policy = os.getenv("MATCH_POLICY", "RANDOM")
        cls.tag_store = os.getenv("TAG_STORE", "FILE")
        cls.tag_store_file = os.getenv("TAG_STORE_FILE", "tagstore.json")
        cls.host = os.getenv("HOST", "localhost")
        cls.port = int(os.getenv("PORT", "80"))
        cls.root_path = os.getenv("ROOT_PATH", "/")
        cls.log_level = os.getenv("LOG_LEVEL", "INFO")
