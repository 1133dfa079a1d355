import logging
import os
import sys

from layermark import (
    LayermarkError, Settings, load_image, load_settings, prepare_canvas, quantize_image,
    export_3mf, export_stl_zip, write_output,
)

USAGE = "usage: python main.py IMAGE [-o OUT] [--stl] [--flat] [--seed N] [--settings FILE] [-v]"


def _option(argv, *names):
    for name in names:
        if name in argv:
            index = argv.index(name)
            if index + 1 >= len(argv):
                raise ValueError(f"{name} needs a value")
            return argv[index + 1]
    return None


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ('-h', '--help'):
        print(USAGE)
        return 0 if argv else 1

    logging.basicConfig(
        level=logging.DEBUG if ('-v' in argv or '--verbose' in argv) else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )

    image_path = argv[0]
    as_stl = '--stl' in argv
    try:
        settings_path = _option(argv, '--settings')
        seed = _option(argv, '--seed')
        output = _option(argv, '-o', '--output')

        settings = load_settings(settings_path) if settings_path else Settings()
        if '--flat' in argv:
            settings = Settings.from_dict({**settings.to_dict(), 'is_tactile': False})
        if output is None:
            stem = os.path.splitext(os.path.basename(image_path))[0]
            output = f"{stem}_stls.zip" if as_stl else f"{stem}.3mf"

        canvas = prepare_canvas(load_image(image_path), settings)
        quantized = quantize_image(canvas, rng=int(seed) if seed is not None else None)
        data = export_stl_zip(quantized, settings) if as_stl else export_3mf(quantized, settings)
        write_output(data, output)
    except (LayermarkError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Saved {output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
