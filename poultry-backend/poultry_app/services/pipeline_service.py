# poultry_app/services/pipeline_service.py
"""
Orchestrator upload gambar -> diagnosis.

State linear (tanpa back-edge), satu request = satu run, tiap tahap
berjalan setelah tahap sebelumnya selesai:

  RECEIVED -> VALIDATED -> COMPRESSED -> CLASSIFIED -> INTERPRETED
           -> UPLOADED -> PERSISTED -> DONE

Kegagalan di tahap mana pun langsung ke FAILED(stage, error) dan tahap
berikutnya tidak dijalankan. Blob di-upload setelah interpretasi karena
folder tujuan ("user_uploads/<label>") bergantung pada label pemenang.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from poultry_app.core.errors import PipelineError
from poultry_app.ml.classification.client import ClassifierClient
from poultry_app.ml.classification.predict import (
    DEFAULT_LABELS,
    BASELINE_LABEL,
    Interpretation,
    interpret_prediction,
    parse_prediction,
)
from poultry_app.services.compression_service import ImageCompressor, ProcessedImage
from poultry_app.services.save_service import PersistenceCoordinator
from poultry_app.services.validation_service import ImageValidator
from poultry_app.utils.image_io import generate_file_name, image_to_base64, safe_basename

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    COMPRESSED = "compressed"
    CLASSIFIED = "classified"
    INTERPRETED = "interpreted"
    UPLOADED = "uploaded"
    PERSISTED = "persisted"
    DONE = "done"
    FAILED = "failed"


# nama tahap yang dilaporkan saat FAILED
STAGE_VALIDATE = "validate"
STAGE_COMPRESS = "compress"
STAGE_CLASSIFY = "classify"
STAGE_INTERPRET = "interpret"
STAGE_UPLOAD = "upload"
STAGE_PERSIST_IMAGE = "persist-image"
STAGE_PERSIST_DIAGNOSIS = "persist-diagnosis"


@dataclass
class RawImage:
    data: bytes
    content_type: str | None = None
    filename: str | None = None


@dataclass
class PipelineResult:
    state: PipelineState
    stage: Optional[str] = None
    error: Optional[PipelineError] = None
    image: Optional[dict] = None
    prediction: Optional[dict] = None
    transitions: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state == PipelineState.DONE

    def to_dict(self) -> dict:
        if self.ok:
            return {
                "success": True,
                "message": "Image uploaded and analyzed successfully",
                "data": {"image": self.image, "prediction": self.prediction},
            }
        out = {"success": False, "stage": self.stage}
        if self.error is not None:
            out.update(self.error.to_dict())
        return out


class _Run:
    """State satu request; tidak dibagi antar request."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        self.state = PipelineState.RECEIVED
        self.transitions = [PipelineState.RECEIVED]

    def advance(self, state: PipelineState):
        logger.info("[%s] %s -> %s", self.request_id, self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    def fail(self, stage: str, error: PipelineError) -> PipelineResult:
        level = logging.WARNING if error.http_status < 500 else logging.ERROR
        logger.log(level, "[%s] %s -> failed(%s): %s", self.request_id, self.state.value, stage, error.message)
        self.state = PipelineState.FAILED
        self.transitions.append(PipelineState.FAILED)
        return PipelineResult(
            state=PipelineState.FAILED,
            stage=stage,
            error=error,
            transitions=list(self.transitions),
        )


class DiagnosisPipeline:
    def __init__(
        self,
        validator: ImageValidator,
        compressor: ImageCompressor,
        classifier: ClassifierClient,
        coordinator: PersistenceCoordinator,
        expected_labels=DEFAULT_LABELS,
        baseline_label: str = BASELINE_LABEL,
        confidence_threshold: float = 0.70,
        folder_prefix: str = "user_uploads",
    ):
        self.validator = validator
        self.compressor = compressor
        self.classifier = classifier
        self.coordinator = coordinator
        self.expected_labels = tuple(expected_labels)
        self.baseline_label = baseline_label
        self.confidence_threshold = float(confidence_threshold)
        self.folder_prefix = folder_prefix.strip("/")

    def folder_for(self, label: str) -> str:
        return f"{self.folder_prefix}/{label}"

    def run(self, raw: RawImage, user_id: int) -> PipelineResult:
        file_name = generate_file_name(raw.filename, user_id)
        run = _Run(file_name)
        logger.info("[%s] received %s (%d bytes) from user %s",
                    file_name, safe_basename(raw.filename), len(raw.data or b""), user_id)

        try:
            self.validator.validate(raw.data)
        except PipelineError as e:
            return run.fail(STAGE_VALIDATE, e)
        run.advance(PipelineState.VALIDATED)

        try:
            processed: ProcessedImage = self.compressor.compress(raw.data)
        except PipelineError as e:
            return run.fail(STAGE_COMPRESS, e)
        run.advance(PipelineState.COMPRESSED)

        try:
            response = self.classifier.predict(image_to_base64(processed.data))
        except PipelineError as e:
            return run.fail(STAGE_CLASSIFY, e)
        run.advance(PipelineState.CLASSIFIED)

        try:
            prediction = parse_prediction(response.predictions, self.expected_labels)
            interpretation: Interpretation = interpret_prediction(
                prediction,
                threshold=self.confidence_threshold,
                baseline_label=self.baseline_label,
                model_info=response.model_info,
            )
        except PipelineError as e:
            return run.fail(STAGE_INTERPRET, e)
        run.advance(PipelineState.INTERPRETED)

        try:
            blob = self.coordinator.store_blob(
                processed.data, self.folder_for(interpretation.label), file_name, processed.content_type
            )
        except PipelineError as e:
            return run.fail(STAGE_UPLOAD, e)
        run.advance(PipelineState.UPLOADED)

        try:
            saved = self.coordinator.insert_image(user_id, file_name, blob)
        except PipelineError as e:
            # blob sudah tersimpan -> orphan blob
            logger.warning("[%s] orphan blob left at %s", file_name, blob.path)
            return run.fail(STAGE_PERSIST_IMAGE, e)

        try:
            diagnosis_id, model_id = self.coordinator.insert_diagnosis(
                user_id, saved.id, interpretation.label, interpretation.confidence
            )
        except PipelineError as e:
            # row images sudah commit -> orphan image row
            logger.warning("[%s] orphan image row id=%s left without diagnosis", file_name, saved.id)
            return run.fail(STAGE_PERSIST_DIAGNOSIS, e)
        run.advance(PipelineState.PERSISTED)

        prediction_out = interpretation.to_dict()
        prediction_out["id"] = diagnosis_id
        prediction_out["model_id"] = model_id

        run.advance(PipelineState.DONE)
        return PipelineResult(
            state=PipelineState.DONE,
            image={
                "id": saved.id,
                "filename": saved.filename,
                "path": saved.path,
                "url": saved.public_url,
                "size": processed.size,
                "dimensions": {"width": processed.width, "height": processed.height},
            },
            prediction=prediction_out,
            transitions=list(run.transitions),
        )


def build_pipeline(config, session_factory=None, blob_store=None, classifier=None) -> DiagnosisPipeline:
    """Rakit semua komponen dari Config (satu-satunya tempat Config dibaca)."""
    from poultry_app.utils.storage_io import build_blob_store

    if session_factory is None:
        from poultry_app.database.db import SessionLocal
        session_factory = SessionLocal
    if blob_store is None:
        blob_store = build_blob_store(config)
    if classifier is None:
        classifier = build_classifier(config)

    return DiagnosisPipeline(
        validator=ImageValidator(
            min_size=(config.IMG_MIN_WIDTH, config.IMG_MIN_HEIGHT),
            max_size=(config.IMG_MAX_WIDTH, config.IMG_MAX_HEIGHT),
        ),
        compressor=ImageCompressor(
            max_bytes=config.MAX_IMAGE_SIZE,
            max_box=(config.COMPRESS_MAX_WIDTH, config.COMPRESS_MAX_HEIGHT),
            quality=config.COMPRESS_QUALITY,
            quality_step=config.COMPRESS_QUALITY_STEP,
            quality_floor=config.COMPRESS_QUALITY_FLOOR,
            shrink_factor=config.COMPRESS_SHRINK_FACTOR,
            fallback_quality=config.COMPRESS_FALLBACK_QUALITY,
        ),
        classifier=classifier,
        coordinator=PersistenceCoordinator(blob_store, session_factory),
        expected_labels=config.CLASS_LABELS,
        baseline_label=config.BASELINE_LABEL,
        confidence_threshold=config.CONFIDENCE_THRESHOLD,
        folder_prefix=config.UPLOAD_FOLDER_PREFIX,
    )


def build_classifier(config, transport=None) -> ClassifierClient:
    return ClassifierClient(
        config.ML_SERVICE_URL,
        predict_timeout=config.ML_PREDICT_TIMEOUT,
        batch_timeout=config.ML_BATCH_TIMEOUT,
        info_timeout=config.ML_INFO_TIMEOUT,
        retrain_timeout=config.ML_RETRAIN_TIMEOUT,
        health_timeout=config.ML_HEALTH_TIMEOUT,
        transport=transport,
    )
