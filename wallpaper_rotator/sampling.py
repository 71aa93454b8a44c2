def calculate_sample_size(width: int, height: int, req_width: int, req_height: int) -> int:
    """Compute the power-of-two downsample factor to decode an image with.

    Keeps doubling the factor while the half-size image, divided by the factor,
    still covers the required size in both dimensions. The result bounds peak
    memory without ever decoding below the requested resolution.

    Args:
        width: Original image width in pixels
        height: Original image height in pixels
        req_width: Required width in pixels, usually the display width
        req_height: Required height in pixels, usually the display height

    Returns:
        A power of two >= 1. Returns 1 when the image is already no larger
        than the requirement.
    """
    sample_size = 1
    req_width = max(1, req_width)
    req_height = max(1, req_height)

    if height > req_height or width > req_width:
        half_height = height // 2
        half_width = width // 2

        while half_height // sample_size >= req_height and half_width // sample_size >= req_width:
            sample_size *= 2

    return sample_size
