from datetime import datetime, timedelta
import io
import logging
import os
import threading
import uuid

from flask import Flask, Response, jsonify, request

from config_helper import get_palette, load_config, save_config, setup_logging, validate_config
from image_helper import QuantizeMode, encode_indices, encode_packed, quantize, raster_to_image
from source_helper import load_image, prepare_raster

###########
# GLOBALS #
###########

HTTP_SERVER_PORT = int(os.getenv('HTTP_SERVER_PORT', '9999'))
OUTPUT_FORMATS = ('png', 'indices', 'packed')
TRANSFER_TIMEOUT = timedelta(minutes=int(os.getenv('TRANSFER_TIMEOUT_MINUTES', '10')))

logger = logging.getLogger(__name__)

config = load_config()

app = Flask(__name__)
# Palette order is the device color code order, keep JSON objects as written
app.json.sort_keys = False

transfers_lock = threading.Lock()
active_transfers = {}
current_frame = {}


def _read_request_image():
    """Decode the image sent as multipart 'image', JSON {'url': ...} or raw body"""
    if 'image' in request.files:
        return load_image(data=request.files['image'].read())
    if request.is_json:
        data = request.get_json(silent=True) or {}
        if not data.get('url'):
            raise ValueError("JSON body must contain an image 'url'")
        return load_image(url=data['url'])
    return load_image(data=request.get_data())


def _request_mode():
    mode = request.args.get('mode', config['mode'])
    try:
        return QuantizeMode(mode)
    except ValueError:
        raise ValueError(f"Unknown quantization mode {mode!r}") from None


def _request_format(default):
    output_format = request.args.get('format', default)
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unknown output format {output_format!r}, expected one of {list(OUTPUT_FORMATS)}")
    return output_format


def _encode(raster, palette, output_format):
    if output_format == 'indices':
        return encode_indices(raster, palette)
    if output_format == 'packed':
        return encode_packed(raster, palette)
    img_byte_arr = io.BytesIO()
    raster_to_image(raster).save(img_byte_arr, format='PNG')
    return img_byte_arr.getvalue()


def _render_request_image(output_format):
    """Run the uploaded image through the full pipeline"""
    mode = _request_mode()
    palette = get_palette(config)

    img = _read_request_image()
    raster = prepare_raster(img, config)
    quantized = quantize(raster, palette, mode)
    logger.info(f"Quantized {img.width}x{img.height} image to {quantized.width}x{quantized.height} "
                f"({mode.value}, {len(palette)} colors)")
    return quantized, _encode(quantized, palette, output_format)


def _drop_stale_transfers():
    """Forget transfers a device started but never finished. Caller holds transfers_lock"""
    cutoff = datetime.now() - TRANSFER_TIMEOUT
    for transfer_id in [t for t, transfer in active_transfers.items() if transfer['created_at'] < cutoff]:
        del active_transfers[transfer_id]
        logger.info(f"Dropped abandoned transfer {transfer_id}")


################
# FLASK SERVER #
################

@app.route('/palette', methods=['GET'])
def get_palette_info():
    try:
        return jsonify(get_palette(config).to_dict())
    except ValueError as e:
        return jsonify({'error': str(e)}), 500


@app.route('/config', methods=['GET', 'PUT'])
def manage_config():
    if request.method == 'GET':
        return jsonify(config)

    new_config = request.get_json(silent=True)
    if not isinstance(new_config, dict):
        return jsonify({'error': 'Config update must be a JSON object'}), 400

    candidate = {**config, **new_config}
    try:
        validate_config(candidate)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    config.clear()
    config.update(candidate)
    try:
        save_config(config)
    except OSError as e:
        logger.exception("Failed to save config")
        return jsonify({'error': str(e)}), 500
    logger.info(f"Config updated: {sorted(new_config)}")
    return jsonify({'status': 'updated'})


@app.route('/quantize', methods=['POST'])
def quantize_image():
    try:
        output_format = _request_format('png')
        quantized, payload = _render_request_image(output_format)
    except ValueError as e:
        logger.warning(f"Rejected quantize request: {e}")
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Error during quantization")
        return jsonify({'error': str(e)}), 500

    mimetype = 'image/png' if output_format == 'png' else 'application/octet-stream'
    response = Response(payload, mimetype=mimetype)
    response.headers['X-Image-Width'] = str(quantized.width)
    response.headers['X-Image-Height'] = str(quantized.height)
    return response


@app.route('/frame', methods=['GET', 'POST'])
def manage_frame():
    if request.method == 'GET':
        with transfers_lock:
            raster = current_frame.get('raster')
        if raster is None:
            return jsonify({'error': 'No frame available'}), 404
        return Response(_encode(raster, None, 'png'), mimetype='image/png')

    try:
        output_format = _request_format('indices')
        if output_format == 'png':
            raise ValueError("Frames must use a device format (indices or packed)")
        quantized, payload = _render_request_image(output_format)
    except ValueError as e:
        logger.warning(f"Rejected frame upload: {e}")
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        logger.exception("Error during frame preparation")
        return jsonify({'error': str(e)}), 500

    with transfers_lock:
        current_frame.clear()
        current_frame.update({
            'raster': quantized,
            'image_data': payload,
            'format': output_format,
            'created_at': datetime.now().isoformat()
        })
    logger.info(f"New {output_format} frame ready: {len(payload)} bytes")
    return jsonify({
        'width': quantized.width,
        'height': quantized.height,
        'format': output_format,
        'image_size': len(payload)
    })


@app.route('/init-transfer', methods=['POST'])
def init_transfer():
    data = request.get_json(silent=True) or {}
    buffer_size = data.get('buffer_size', config['buffer_size'])
    if not isinstance(buffer_size, int) or isinstance(buffer_size, bool) or buffer_size <= 0:
        return jsonify({'error': 'buffer_size must be a positive integer'}), 400

    with transfers_lock:
        _drop_stale_transfers()
        img_bytes = current_frame.get('image_data')
        if img_bytes is None:
            return jsonify({'error': 'No frame available'}), 404

        if len(img_bytes) % buffer_size != 0:
            return jsonify({
                'error': 'Image size must be a multiple of buffer size',
                'image_size': len(img_bytes),
                'buffer_size': buffer_size
            }), 400

        transfer_id = str(uuid.uuid4())
        active_transfers[transfer_id] = {
            'image_data': img_bytes,
            'total_chunks': len(img_bytes) // buffer_size,
            'buffer_size': buffer_size,
            'served_chunks': set(),
            'created_at': datetime.now()
        }
        total_chunks = active_transfers[transfer_id]['total_chunks']

    logger.info(f"Transfer {transfer_id} started for device {data.get('device_id', 'unknown')}: "
                f"{total_chunks} chunks of {buffer_size} bytes")
    return jsonify({
        'transfer_id': transfer_id,
        'total_chunks': total_chunks,
        'image_size': len(img_bytes)
    })


@app.route('/get-chunk/<transfer_id>/<int:chunk_index>', methods=['GET'])
def get_chunk(transfer_id, chunk_index):
    with transfers_lock:
        transfer = active_transfers.get(transfer_id)
        if transfer is None:
            logger.warning(f"Invalid transfer ID: {transfer_id}")
            return jsonify({'error': 'Invalid or expired transfer ID'}), 404

        if chunk_index >= transfer['total_chunks']:
            logger.warning(f"Chunk index out of range: {chunk_index}")
            return jsonify({'error': 'Chunk index out of range'}), 400

        start_idx = chunk_index * transfer['buffer_size']
        end_idx = start_idx + transfer['buffer_size']
        chunk = transfer['image_data'][start_idx:end_idx]

        transfer['served_chunks'].add(chunk_index)
        logger.debug(f"Sent chunk {chunk_index}/{transfer['total_chunks'] - 1} for transfer {transfer_id}")

        # Clean up if transfer is complete
        if len(transfer['served_chunks']) == transfer['total_chunks']:
            del active_transfers[transfer_id]

    return Response(chunk, mimetype='application/octet-stream')


########
# MAIN #
########

def main():
    setup_logging(os.getenv('LOG_LEVEL', 'INFO'))
    validate_config(config)
    app.run(host='0.0.0.0', port=HTTP_SERVER_PORT)


if __name__ == '__main__':
    main()
