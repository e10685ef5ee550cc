class InternalURIs:
    API = "/api"
    V1 = API + "/v1"
    UPLOAD = V1 + "/upload"
    DOWNLOAD = V1 + "/download"
    FILES = V1 + "/files"
    JOBS = V1 + "/jobs"
    ROOT = V1 + "/roots/{root_id}"
    PIECES = V1 + "/pieces"


class ExternalURIs:
    PIECE = "/pdp/piece"
    PIECE_DOWNLOAD = "/piece/{piece_id}"
    PROOF_SETS = "/pdp/proof-sets"
    PROOF_SET_CREATED = PROOF_SETS + "/created/{tx_hash}"
    PROOF_SET_ROOTS = PROOF_SETS + "/{proof_set_id}/roots"


# Hash name the store expects in the existence probe.
COMMP_HASH_NAME = "sha2-256-trunc254-padded"

MIB = 1 << 20
GIB = 1 << 30
