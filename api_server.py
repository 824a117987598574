#!/usr/bin/env python3
"""
ModelCut Studio API Server
Product-shot generation, green-screen background removal and project storage.
"""

import os
import math
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

# --- Centralized Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
    datefmt='%H:%M:%S'
)

# Import services and models
from modelcut.exceptions import (
    GenerationError,
    ImageDecodeError,
    ProjectNotFoundError,
    ProjectStoreError,
    SurfaceUnavailableError,
)
from modelcut.models.image import Image
from modelcut.models.workspace import GenerationConfig, ImageAsset, Workspace
from modelcut.services.image_service import ImageService
from modelcut.services.chroma_key_filter import ChromaKeyFilter
from modelcut.services.green_screen_compositor import GreenScreenCompositor
from modelcut.services.generation_service import GenerationService
from modelcut.services.project_service import ProjectService
from modelcut.pipeline.background_remover import remove_background
from modelcut.pipeline.product_shot_generator import generate_product_shot

app = Flask(__name__)
CORS(app)  # Enable CORS for frontend communication

# Configuration
ALLOWED_EXTENSIONS = set(os.getenv("ALLOWED_EXTENSIONS", "png,jpg,jpeg,webp,bmp").split(","))
MAX_CONTENT_LENGTH = int(os.getenv("MAX_UPLOAD_SIZE_MB", "50")) * 1024 * 1024

app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

# Initialize services
image_service = ImageService()
chroma_key_filter = ChromaKeyFilter()
generation_service = GenerationService()
compositor = GreenScreenCompositor(generation_service)
project_service = ProjectService()

logger = logging.getLogger(__name__)


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _payload() -> Dict[str, Any]:
    """Merged form fields and JSON body of the current request."""
    data: Dict[str, Any] = dict(request.form.items())
    if request.is_json:
        data.update(request.get_json(silent=True) or {})
    return data


def _tolerance(data: Dict[str, Any]) -> Optional[float]:
    value = data.get('tolerance')
    if value in (None, ''):
        return None
    tolerance = float(value)
    if not math.isfinite(tolerance) or tolerance <= 0:
        raise ValueError("tolerance must be a positive finite number")
    return tolerance


def _flag(data: Dict[str, Any], name: str, default: bool = False) -> bool:
    value = data.get(name)
    if value in (None, ''):
        return default
    return str(value).lower() in ('1', 'true', 'yes')


def _read_input_image(data: Dict[str, Any]) -> Image:
    """Uploaded file 'image', or 'image_url' (data URI, URL or asset reference)."""
    if 'image' in request.files:
        file = request.files['image']
        if file.filename == '':
            raise ValueError("No file selected")
        if not allowed_file(secure_filename(file.filename)):
            raise ValueError(f"Unsupported file type: {file.filename}")
        return image_service.decode(file.read())
    if data.get('image_url'):
        return project_service.load_image(data['image_url'])
    raise ValueError("No image provided")


def _image_response(image: Image, data: Dict[str, Any], message: str):
    body = {
        'success': True,
        'width': image.width,
        'height': image.height,
        'message': message,
    }
    if _flag(data, 'save'):
        body['reference'] = project_service.store_image(image, folder="results")
    body['image'] = image_service.to_data_uri(image)
    return jsonify(body)


@app.route('/api/chroma-key', methods=['POST'])
def chroma_key():
    """Key an image that already sits on a green backdrop."""
    data = _payload()
    image = _read_input_image(data)
    keyed = chroma_key_filter.apply(image, _tolerance(data))
    logger.info(f"Chroma key applied to {image.width}x{image.height} image")
    return _image_response(keyed, data, 'Background keyed')


@app.route('/api/remove-background', methods=['POST'])
def remove_background_step():
    """Green-screen re-render through the generation API, then chroma key."""
    data = _payload()
    image = _read_input_image(data)
    keyed = remove_background(
        image,
        compositor=compositor,
        chroma_key_filter=chroma_key_filter,
        color=data.get('color') or compositor.default_color,
        tolerance=_tolerance(data),
        preserve_shadows=_flag(data, 'preserve_shadows', default=True),
    )
    return _image_response(keyed, data, 'Background removed')


@app.route('/api/generate', methods=['POST'])
def generate():
    """Generate a product shot, optionally recording it on a stored project."""
    data = request.get_json(silent=True) or {}
    config = GenerationConfig.from_dict(data.get('config') or {})

    project_id = data.get('project_id')
    if project_id:
        workspace = project_service.get_project(project_id)
    else:
        base = data.get('base_image')
        workspace = Workspace(
            name=data.get('name') or 'Untitled',
            base_image=ImageAsset.from_dict(base) if base else None,
            product_images=[ImageAsset.from_dict(p) for p in data.get('product_images') or []],
        )

    result = generate_product_shot(
        workspace, config,
        generation_service=generation_service,
        project_service=project_service,
    )
    if project_id:
        workspace = project_service.update_project(project_id, workspace)
        result = workspace.history[workspace.active_version_index]

    return jsonify({
        'success': True,
        'project_id': project_id,
        'result': result.to_dict(),
    })


@app.route('/api/projects', methods=['GET'])
def list_projects():
    projects = project_service.list_projects()
    return jsonify({'success': True, 'projects': [p.to_dict() for p in projects]})


@app.route('/api/projects', methods=['POST'])
def create_project():
    workspace = Workspace.from_dict(request.get_json(silent=True) or {})
    workspace.id = None
    project_id = project_service.save_project(workspace)
    return jsonify({'success': True, 'project_id': project_id}), 201


@app.route('/api/projects/<project_id>', methods=['GET'])
def get_project(project_id: str):
    return jsonify({'success': True, 'project': project_service.get_project(project_id).to_dict()})


@app.route('/api/projects/<project_id>', methods=['PUT'])
def update_project(project_id: str):
    workspace = Workspace.from_dict(request.get_json(silent=True) or {})
    updated = project_service.update_project(project_id, workspace)
    return jsonify({'success': True, 'project': updated.to_dict()})


@app.route('/api/projects/<project_id>', methods=['DELETE'])
def delete_project(project_id: str):
    project_service.delete_project(project_id)
    return jsonify({'success': True, 'message': f'Project {project_id} deleted'})


@app.route('/api/assets/<path:reference>', methods=['GET'])
def serve_asset(reference: str):
    """Serve a stored asset (asset://<reference>)."""
    try:
        path = project_service.asset_path(f"asset://{reference}")
    except ProjectStoreError:
        path = None
    if path is None or not path.is_file():
        return jsonify({'success': False, 'message': 'Asset not found'}), 404
    return send_file(str(path))


# ─── error mapping ────────────────────────────────────────────────────
@app.errorhandler(ImageDecodeError)
@app.errorhandler(ValueError)
@app.errorhandler(KeyError)
def bad_input(e):
    logger.warning(f"Bad input: {e}")
    return jsonify({'success': False, 'message': str(e)}), 400


@app.errorhandler(SurfaceUnavailableError)
def surface_unavailable(e):
    logger.error(f"Surface unavailable: {e}")
    return jsonify({'success': False, 'message': str(e)}), 500


@app.errorhandler(ProjectNotFoundError)
def project_not_found(e):
    return jsonify({'success': False, 'message': str(e)}), 404


@app.errorhandler(ProjectStoreError)
def project_store_error(e):
    logger.error(f"Project store error: {e}")
    return jsonify({'success': False, 'message': str(e)}), 500


@app.errorhandler(GenerationError)
def generation_error(e):
    logger.error(f"Generation error: {e}")
    return jsonify({'success': False, 'message': str(e)}), 502


@app.errorhandler(413)
def too_large(e):
    """Handle file too large error."""
    return jsonify({'success': False,
                    'message': f'File too large. Maximum size is {MAX_CONTENT_LENGTH // (1024 * 1024)}MB.'}), 413


@app.errorhandler(500)
def internal_error(e):
    """Handle internal server error."""
    logger.error(f"Internal server error: {e}")
    return jsonify({'success': False, 'message': 'Internal server error'}), 500


def main():
    print("🚀 Starting ModelCut Studio API Server...")
    print(f"📁 Project store: {project_service.repository.root}")
    print(f"🔧 Max upload size: {MAX_CONTENT_LENGTH // (1024 * 1024)}MB")
    print("📋 Endpoints:")
    print("   /api/chroma-key")
    print("   /api/remove-background")
    print("   /api/generate")
    print("   /api/projects")
    print("=" * 60)

    app.run(debug=os.getenv("FLASK_DEBUG", "0") == "1", host='0.0.0.0',
            port=int(os.getenv("API_SERVER_PORT", "5002")))


if __name__ == '__main__':
    main()
