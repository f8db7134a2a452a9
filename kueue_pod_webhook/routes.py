import copy
import logging

from flask import Blueprint, jsonify, request

from .errors import WebhookError
from .helpers import make_admission_response, make_patch
from .models import AdmissionReviewModel
from .webhook import PodWebhook

log = logging.getLogger("pod-webhook")


def create_routes(webhook: PodWebhook):
    bp = Blueprint("webhook", __name__)

    @bp.route("/health", methods=["GET"])
    def health():
        return {"status": "healthy"}, 200

    @bp.route("/mutate", methods=["POST"])
    def mutate():
        review_json = request.get_json(silent=True)

        admission = AdmissionReviewModel.from_dict(review_json or {})
        if admission is None:
            log.warning("Invalid AdmissionReview payload for /mutate")
            return jsonify(make_admission_response(uid="", allowed=False)), 400

        req = admission.request
        uid = req.uid
        if req.kind != "Pod" or req.operation != "CREATE":
            return jsonify(make_admission_response(uid, True))

        original = req.obj
        pod = copy.deepcopy(original)
        try:
            webhook.default(pod)
        except WebhookError as e:
            log.error("Error in /mutate for uid=%s: %s", uid, e)
            return jsonify(
                make_admission_response(uid, False, message=str(e), code=500)
            )

        patch = make_patch(original, pod)
        if patch:
            log.info(
                "Patching pod %s/%s with %d operations",
                pod.get("metadata", {}).get("namespace", ""),
                pod.get("metadata", {}).get("name", ""),
                len(patch),
            )
        return jsonify(make_admission_response(uid, True, patch))

    @bp.route("/validate", methods=["POST"])
    def validate():
        """
        Validating webhook: pod CREATE and UPDATE are checked, DELETE is
        always allowed.
        """
        review_json = request.get_json(silent=True)
        admission = AdmissionReviewModel.from_dict(review_json or {})
        if admission is None:
            log.warning("Invalid AdmissionReview payload for /validate")
            return jsonify(make_admission_response(uid="", allowed=False)), 400

        req = admission.request
        uid = req.uid
        if req.kind != "Pod":
            return jsonify(make_admission_response(uid, True))

        if req.operation == "CREATE":
            warnings, err = webhook.validate_create(req.obj)
        elif req.operation == "UPDATE":
            warnings, err = webhook.validate_update(req.old_obj or {}, req.obj)
        else:
            warnings, err = webhook.validate_delete(req.old_obj or req.obj)

        if err is not None:
            log.info("Denied %s for uid=%s: %s", req.operation, uid, err)
            return jsonify(
                make_admission_response(
                    uid,
                    False,
                    warnings=warnings,
                    message=str(err),
                    code=403,
                    reason="Invalid",
                )
            )

        return jsonify(make_admission_response(uid, True, warnings=warnings))

    return bp
