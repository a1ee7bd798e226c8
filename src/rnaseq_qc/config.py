from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    bundle_path: Path = Path("qc_bundle.h5ad")
    report_name: str = "qc_report"
    out_dir: Path = Path("qc_out")

    class Config:
        env_file = ".env"
        env_prefix = "RNASEQ_QC_"


settings = Settings()
