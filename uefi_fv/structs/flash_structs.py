FLASH_HEADER = b"\x5A\xA5\xF0\x0F"

# Offset of the signature within the descriptor and the size of the region
# the descriptor occupies at the base of the image.
FLASH_HEADER_OFFSET = 0x10
FLASH_DESCRIPTOR_SIZE = 0x10000
