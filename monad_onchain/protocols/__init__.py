from typing import Dict

from ..orchestrator import Script
from . import chogstars, deploy, magma, monadbox, sendtx, uniswap, wmon

SCRIPTS: Dict[str, Script] = {
    script.key: script
    for script in (
        magma.build_script(),
        wmon.build_script(),
        uniswap.build_script(),
        chogstars.build_script(),
        monadbox.build_script(),
        sendtx.build_script(),
        deploy.build_script(),
    )
}
